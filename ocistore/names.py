"""Validation of repository names as defined by the distribution specification."""

from __future__ import annotations

import re

NAME_CONSTRAINT = "name"

_COMPONENT = r"[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*"
NAME_PATTERN = re.compile(rf"{_COMPONENT}(?:/{_COMPONENT})*")


def is_valid_name(segment: str) -> bool:
    """Return True if the whole of ``segment`` is a valid repository name."""
    return NAME_PATTERN.fullmatch(segment) is not None