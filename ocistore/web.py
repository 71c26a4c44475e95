"""HTTP request and response values, and extraction of request data."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import unquote_to_bytes

JSON_CONTENT_TYPE = "application/json"


@dataclass
class Response:
    """An HTTP response whose body is held in full."""

    status: HTTPStatus
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.status = HTTPStatus(self.status)
        self.body = bytes(self.body)

    @classmethod
    def empty(cls, status: int) -> Response:
        """A response carrying only a status code."""
        return cls(HTTPStatus(status))

    @classmethod
    def json(cls, status: int, payload: Any) -> Response:
        """A response with ``payload`` serialised as compact JSON."""
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        return cls(
            HTTPStatus(status),
            {"Content-Type": JSON_CONTENT_TYPE},
            body.encode("utf-8"),
        )


def error_response(status: int, message: str, code_as_string: bool = True) -> Response:
    """Build the JSON error document ``{"error": {"code": ..., "message": ...}}``."""
    status = HTTPStatus(status)
    code: int | str = str(status.value) if code_as_string else status.value
    return Response.json(status, {"error": {"code": code, "message": message}})


class HttpError(Exception):
    """An error that turns into a JSON error response."""

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    code_as_string: bool = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = HTTPStatus(status_code)

    def to_response(self) -> Response:
        """Render this error as a response."""
        return error_response(self.status_code, str(self), self.code_as_string)


class PathError(HttpError):
    """Path parameters are missing or do not fit the handler."""

    status_code = HTTPStatus.BAD_REQUEST

    MISSING_PATH_PARAMS = "Missing path parameters"

    @classmethod
    def _missing(cls) -> PathError:
        return cls(cls.MISSING_PATH_PARAMS, HTTPStatus.INTERNAL_SERVER_ERROR)

    @classmethod
    def _wrong_number(cls, expected: int, actual: int) -> PathError:
        return cls(
            f"Wrong number of path parameters. Expected {expected}, got {actual}",
            HTTPStatus.BAD_REQUEST,
        )


class QueryError(HttpError):
    """The query string is malformed or cannot be decoded."""

    status_code = HTTPStatus.BAD_REQUEST

    INVALID_QUERY = "Invalid query string"


class BodyError(HttpError):
    """The request body could not be read."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, reason: object) -> None:
        super().__init__(f"Failed to read request body: {reason}")


def _decode_component(text: str) -> str:
    try:
        return unquote_to_bytes(text).decode("utf-8")
    except UnicodeDecodeError as err:
        raise QueryError(f"Failed to decode query parameter: {err}") from err


def parse_query(query_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs joined by ``&``; the first value of a key wins."""
    params: dict[str, str] = {}
    if query_string is None:
        return params

    for pair in query_string.split("&"):
        key, separator, value = pair.partition("=")
        if not pair or not separator:
            raise QueryError(QueryError.INVALID_QUERY)
        params.setdefault(_decode_component(key), _decode_component(value))
    return params


@dataclass
class Request:
    """An incoming HTTP request, with routing results once matched."""

    method: str
    path: str
    query: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    route: str | None = None
    params: list[tuple[str, str]] | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.body = bytes(self.body)

    def query_params(self) -> dict[str, str]:
        """The decoded query parameters."""
        return parse_query(self.query)

    def path_params(self, count: int) -> str | tuple[str, ...]:
        """Return exactly ``count`` path parameter values, in route order.

        A single parameter is returned as a plain string.
        """
        if self.params is None:
            raise PathError._missing()
        if len(self.params) != count:
            raise PathError._wrong_number(count, len(self.params))
        values = tuple(value for _, value in self.params)
        return values[0] if count == 1 else values