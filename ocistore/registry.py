"""Request handlers for the registry endpoints of the distribution API."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from http import HTTPStatus

from .digest import Digest, DigestError
from .state import AppState, AppStateError
from .web import HttpError, Request, Response

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
MANIFEST_CONTENT_TYPE = "application/vnd.oci.image.manifest.v1+json"


class _HandlerError(HttpError):
    """A handler failure whose JSON error code is rendered as a number."""

    code_as_string = False

    @classmethod
    def wrap(cls, err: AppStateError | DigestError) -> _HandlerError:
        return cls(str(err), err.status_code)


class BlobError(_HandlerError):
    """Failure while pulling, pushing or deleting a blob."""

    status_code = HTTPStatus.BAD_REQUEST

    MISSING_DIGEST_PARAMETER = "Missing digest parameter"
    INVALID_UPLOAD_REFERENCE = "Invalid upload reference"


class ManifestError(_HandlerError):
    """Failure while pulling, pushing or deleting a manifest."""

    status_code = HTTPStatus.NOT_FOUND


class RegistryError(_HandlerError):
    """Failure while listing tags."""

    status_code = HTTPStatus.NOT_FOUND


@contextmanager
def _raising(error_cls: type[_HandlerError]) -> Iterator[None]:
    try:
        yield
    except (AppStateError, DigestError) as err:
        raise error_cls.wrap(err) from err


def _log(oci: str, request: Request, **fields: str) -> None:
    details = " ".join(f"{key}={value!r}" for key, value in fields.items())
    logger.info(
        "Handling request oci=%s route=%r method=%s %s",
        oci,
        request.route,
        request.method,
        details,
    )


def _content(
    status: HTTPStatus, content_type: str, data: bytes, include_body: bool
) -> Response:
    return Response(
        status,
        {"Content-Type": content_type, "Content-Length": str(len(data))},
        data if include_body else b"",
    )


def handle_root_get(request: Request, state: AppState) -> Response:
    """API version check: always succeeds."""
    _log("end-1", request)
    return Response.empty(HTTPStatus.OK)


def handle_blob_pull(request: Request, state: AppState) -> Response:
    """Return a blob (GET) or only its headers (HEAD)."""
    name, digest_text = request.path_params(2)
    _log("end-2", request, name=name, digest=digest_text)

    with _raising(BlobError):
        digest = Digest.parse(digest_text)
        blob = state.get_blob(name, digest)
    return _content(HTTPStatus.OK, OCTET_STREAM, blob, request.method == "GET")


def handle_blob_push_post(request: Request, state: AppState) -> Response:
    """Push a blob in one request, or open an upload session."""
    name = request.path_params(1)
    query = request.query_params()
    body = request.body

    digest_text = query.get("digest")
    if digest_text is None:
        _log("end-4a", request, name=name)
        upload_id = state.start_upload(name)
        return Response(
            HTTPStatus.ACCEPTED,
            {"Location": f"/v2/{name}/blobs/uploads/{upload_id}"},
        )

    _log("end-4b", request, name=name, digest=digest_text)
    with _raising(BlobError):
        digest = Digest.parse(digest_text)
    actual = Digest.sha256(body)
    if actual != digest:
        raise BlobError(f"Digest mismatch. Expected: {digest} - Actual: {actual}")

    state.add_blob(name, digest, body)
    return Response(HTTPStatus.CREATED, {"Location": f"/v2/{name}/blobs/{digest}"})


def handle_blob_push_put(request: Request, state: AppState) -> Response:
    """Finish an upload session with its final chunk and expected digest."""
    name, reference = request.path_params(2)
    query = request.query_params()
    body = request.body
    _log("end-6", request, name=name, reference=reference)

    digest_text = query.get("digest")
    if digest_text is None:
        raise BlobError(BlobError.MISSING_DIGEST_PARAMETER)
    with _raising(BlobError):
        digest = Digest.parse(digest_text)

    try:
        upload_id = uuid.UUID(reference)
    except ValueError:
        raise BlobError(BlobError.INVALID_UPLOAD_REFERENCE) from None

    with _raising(BlobError):
        state.update_upload(upload_id, body)
        state.complete_upload(upload_id, digest)

    return Response(
        HTTPStatus.CREATED,
        {"Location": f"/v2/{name}/blobs/{digest}", "Content-Type": OCTET_STREAM},
    )


def handle_blob_delete(request: Request, state: AppState) -> Response:
    """Delete a blob from a repository."""
    name, digest_text = request.path_params(2)
    _log("end-10", request, name=name, digest=digest_text)

    with _raising(BlobError):
        digest = Digest.parse(digest_text)
        state.delete_blob(name, digest)
    return Response.empty(HTTPStatus.ACCEPTED)


def handle_manifest_pull(request: Request, state: AppState) -> Response:
    """Return a manifest (GET) or only its headers (HEAD), by tag or digest."""
    name, reference = request.path_params(2)
    _log("end-3", request, name=name, reference=reference)

    with _raising(ManifestError):
        manifest = state.get_manifest(name, reference)
    return _content(
        HTTPStatus.OK, MANIFEST_CONTENT_TYPE, manifest, request.method == "GET"
    )


def handle_manifest_put(request: Request, state: AppState) -> Response:
    """Store a manifest under a tag or digest reference."""
    name, reference = request.path_params(2)
    body = request.body
    _log("end-7", request, name=name, reference=reference)

    digest = Digest.sha256(body)
    state.add_manifest(name, reference, digest, body, None)
    return _content(HTTPStatus.CREATED, MANIFEST_CONTENT_TYPE, body, False)


def handle_manifest_delete(request: Request, state: AppState) -> Response:
    """Delete a manifest by tag or digest."""
    name, reference = request.path_params(2)
    _log("end-9", request, name=name, reference=reference)

    with _raising(ManifestError):
        state.delete_manifest(name, reference)
    return Response.empty(HTTPStatus.ACCEPTED)


def handle_tags_get(request: Request, state: AppState) -> Response:
    """List the tags of a repository as JSON."""
    name = request.path_params(1)
    _log("end-8a", request, name=name)

    with _raising(RegistryError):
        tags = state.list_tags(name)
    return Response.json(HTTPStatus.OK, {"name": name, "tags": tags})