"""In-memory storage for repositories, blobs, manifests and uploads."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from http import HTTPStatus

from .digest import Digest, DigestError


class AppStateError(Exception):
    """Base class for storage lookup failures."""

    status_code = HTTPStatus.NOT_FOUND


class RepositoryNotFound(AppStateError):
    def __init__(self, repository: str) -> None:
        super().__init__(f"Repository not found: {repository}")
        self.repository = repository


class BlobNotFound(AppStateError):
    def __init__(self, repository: str, digest: Digest) -> None:
        super().__init__(f"Blob not found: {digest} in repository {repository}")
        self.repository = repository
        self.digest = digest


class UploadNotFound(AppStateError):
    def __init__(self, upload_id: uuid.UUID) -> None:
        super().__init__(f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class DigestMismatch(AppStateError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Digest mismatch. Expected: {expected} - Actual: {actual}")
        self.expected = expected
        self.actual = actual


class ManifestNotFound(AppStateError):
    def __init__(self, repository: str, reference: str) -> None:
        super().__init__(
            f"Manifest not found: {reference} in repository {repository}"
        )
        self.repository = repository
        self.reference = reference


@dataclass(frozen=True)
class Manifest:
    digest: Digest
    content: bytes
    subject: Digest | None = None


@dataclass
class Repository:
    blobs: dict[Digest, bytes] = field(default_factory=dict)
    manifests: dict[str, Manifest] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class Upload:
    repository: str
    data: bytearray = field(default_factory=bytearray)


def _is_digest(reference: str) -> bool:
    try:
        Digest.parse(reference)
    except DigestError:
        return False
    return True


class AppState:
    """Thread-safe registry storage shared by all request handlers."""

    def __init__(self) -> None:
        self._repositories: dict[str, Repository] = {}
        self._uploads: dict[uuid.UUID, Upload] = {}
        self._lock = threading.RLock()

    def _repository(self, repository: str) -> Repository:
        try:
            return self._repositories[repository]
        except KeyError:
            raise RepositoryNotFound(repository) from None

    def _repository_or_new(self, repository: str) -> Repository:
        return self._repositories.setdefault(repository, Repository())

    def repository_exists(self, repository: str) -> bool:
        with self._lock:
            return repository in self._repositories

    def get_blob(self, repository: str, digest: Digest) -> bytes:
        with self._lock:
            repo = self._repository(repository)
            try:
                return repo.blobs[digest]
            except KeyError:
                raise BlobNotFound(repository, digest) from None

    def add_blob(self, repository: str, digest: Digest, blob: bytes) -> None:
        with self._lock:
            self._repository_or_new(repository).blobs[digest] = bytes(blob)

    def start_upload(self, repository: str) -> uuid.UUID:
        """Open a new upload session and return its identifier."""
        upload_id = uuid.uuid4()
        with self._lock:
            self._uploads[upload_id] = Upload(repository)
        return upload_id

    def update_upload(self, upload_id: uuid.UUID, chunk: bytes) -> int:
        """Append ``chunk`` to an upload; return the upload's total size."""
        with self._lock:
            try:
                upload = self._uploads[upload_id]
            except KeyError:
                raise UploadNotFound(upload_id) from None
            upload.data.extend(chunk)
            return len(upload.data)

    def complete_upload(self, upload_id: uuid.UUID, digest: Digest) -> None:
        """Close an upload and store it as a blob if its digest matches."""
        with self._lock:
            try:
                upload = self._uploads.pop(upload_id)
            except KeyError:
                raise UploadNotFound(upload_id) from None
            actual = Digest.sha256(bytes(upload.data))
            if actual != digest:
                raise DigestMismatch(str(digest), str(actual))
            self.add_blob(upload.repository, digest, bytes(upload.data))

    def add_manifest(
        self,
        repository: str,
        reference: str,
        digest: Digest,
        content: bytes,
        subject: Digest | None = None,
    ) -> None:
        """Store a manifest; a non-digest reference becomes a tag."""
        with self._lock:
            repo = self._repository_or_new(repository)
            repo.manifests[str(digest)] = Manifest(digest, bytes(content), subject)
            if not _is_digest(reference):
                repo.tags[reference] = str(digest)

    def get_manifest(self, repository: str, reference: str) -> bytes:
        """Look up a manifest by digest string or by tag."""
        with self._lock:
            repo = self._repository(repository)
            manifest = repo.manifests.get(reference)
            if manifest is None and reference in repo.tags:
                manifest = repo.manifests.get(repo.tags[reference])
            if manifest is None:
                raise ManifestNotFound(repository, reference)
            return manifest.content

    def list_tags(self, repository: str) -> list[str]:
        with self._lock:
            return list(self._repository(repository).tags)

    def delete_blob(self, repository: str, digest: Digest) -> None:
        with self._lock:
            self._repository(repository).blobs.pop(digest, None)

    def delete_manifest(self, repository: str, reference: str) -> None:
        """Remove a manifest by tag (dropping the tag too) or by digest."""
        with self._lock:
            repo = self._repository(repository)
            digest_str = repo.tags.pop(reference, None)
            repo.manifests.pop(digest_str if digest_str is not None else reference, None)

    def get_referrers(self, repository: str, digest: Digest) -> list[Manifest]:
        """Return manifests whose subject is ``digest``."""
        with self._lock:
            repo = self._repository(repository)
            return [m for m in repo.manifests.values() if m.subject == digest]