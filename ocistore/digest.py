"""Content digests as used by OCI image descriptors."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus


class DigestError(ValueError):
    """Raised when a digest string cannot be parsed or validated."""

    status_code = HTTPStatus.BAD_REQUEST

    INVALID_FORMAT = "Invalid digest format"
    INVALID_ALGORITHM = "Invalid digest algorithm"
    INVALID_HASH_LENGTH = "Invalid hash length"
    INVALID_HASH_CHARACTERS = "Invalid hash characters"


class DigestAlgorithm(Enum):
    """Hash algorithms a digest may name."""

    SHA256 = "sha256"
    SHA512 = "sha512"

    @classmethod
    def parse(cls, value: str) -> DigestAlgorithm:
        """Return the algorithm named by ``value``."""
        try:
            return cls(value)
        except ValueError:
            raise DigestError(DigestError.INVALID_ALGORITHM) from None

    @property
    def hex_length(self) -> int:
        return 64 if self is DigestAlgorithm.SHA256 else 128

    def validate_hash(self, value: str) -> None:
        """Check that ``value`` is a well-formed hash for this algorithm."""
        if len(value.encode("utf-8")) != self.hex_length:
            raise DigestError(DigestError.INVALID_HASH_LENGTH)
        if not all(
            ("a" <= char <= "z") or ("0" <= char <= "9") for char in value
        ):
            raise DigestError(DigestError.INVALID_HASH_CHARACTERS)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Digest:
    """An ``algorithm:hash`` content identifier."""

    algorithm: DigestAlgorithm
    hash: str

    @classmethod
    def sha256(cls, data: bytes) -> Digest:
        """Compute the SHA-256 digest of ``data``."""
        return cls(DigestAlgorithm.SHA256, hashlib.sha256(data).hexdigest())

    @classmethod
    def sha512(cls, data: bytes) -> Digest:
        """Compute the SHA-512 digest of ``data``."""
        return cls(DigestAlgorithm.SHA512, hashlib.sha512(data).hexdigest())

    @classmethod
    def parse(cls, value: str) -> Digest:
        """Parse a digest string such as ``sha256:<hex>``."""
        algorithm_name, separator, hash_value = value.partition(":")
        if not separator:
            raise DigestError(DigestError.INVALID_FORMAT)
        algorithm = DigestAlgorithm.parse(algorithm_name)
        algorithm.validate_hash(hash_value)
        return cls(algorithm, hash_value)

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hash}"