# ocistore

A small, in-memory container registry that speaks the OCI Distribution
API over plain HTTP/1.1. Blobs, manifests and tags live only in memory, so
the registry is meant for local testing, demos and experiments rather than
production storage.

## Installing

```
pip install .
```

Installing with the `test` extra also pulls in the test tools:

```
pip install ".[test]"
```

## Running

```
ocistore
```

By default the server listens on `127.0.0.1:8000`. Use `--host` and
`--port` to bind elsewhere:

```
ocistore --host 0.0.0.0 --port 5000
```

The server logs each connection and each handled request at INFO level.
Stop it with Ctrl-C.

## Supported endpoints

| Endpoint | Method | Path |
|----------|--------|------|
| end-1    | GET    | `/v2/` |
| end-2    | GET, HEAD | `/v2/<name>/blobs/<digest>` |
| end-3    | GET, HEAD | `/v2/<name>/manifests/<reference>` |
| end-4a/4b | POST  | `/v2/<name>/blobs/uploads/` (with `?digest=` for a monolithic upload) |
| end-6    | PUT    | `/v2/<name>/blobs/uploads/<reference>?digest=<digest>` |
| end-7    | PUT    | `/v2/<name>/manifests/<reference>` |
| end-8a   | GET    | `/v2/<name>/tags/list` |
| end-9    | DELETE | `/v2/<name>/manifests/<reference>` |
| end-10   | DELETE | `/v2/<name>/blobs/<digest>` |

A trailing slash is optional on every path. Repository names must follow the
distribution specification's rules: lower-case alphanumeric components,
separated by `.`, `_`, `__` or runs of `-`, and joined by `/`. A request
whose name does not fit gets `404 Not Found`; a method with no routes at all
gets `405 Method Not Allowed`.

Digests take the form `sha256:<64 hex>` or `sha512:<128 hex>`, in lower case.
Uploaded blobs are always checked against their SHA-256 digest.

A manifest pushed under a reference that is not a digest is stored under its
SHA-256 digest and the reference becomes a tag. Manifests can be pulled or
deleted by tag or by digest.

Failures are answered with a JSON document of the form
`{"error": {"code": ..., "message": ...}}`.

## Using it as a library

```python
from ocistore.digest import Digest
from ocistore.state import AppState

state = AppState()
data = b"hello"
digest = Digest.sha256(data)
state.add_blob("library/hello", digest, data)
assert state.get_blob("library/hello", digest) == data
```

The modules:

- `ocistore.digest` — `Digest`, `DigestAlgorithm` and `DigestError`.
- `ocistore.state` — `AppState`, the thread-safe store of repositories,
  blobs, manifests, tags and upload sessions, with its `AppStateError`
  subclasses.
- `ocistore.names` — `is_valid_name()` for repository names.
- `ocistore.web` — `Request`, `Response`, `parse_query()` and the
  `HttpError` family.
- `ocistore.router` — `RoutePattern` (`{param}`, `{*wildcard}`,
  `{param:constraint}`, optional `( ... )` groups) and `AppRouter`.
- `ocistore.registry` — one handler function per endpoint.
- `ocistore.server` — `build_router()` returns a router wired with every
  endpoint above, `start_server(host, port)` serves it, and `main()` is the
  `ocistore` command.

## What it does not do

- Nothing is persisted: everything is lost when the server stops.
- There is no authentication, no TLS and no HTTP/2.
- Chunked uploads with PATCH, the catalog listing and the referrers endpoint
  are not served. `AppState.get_referrers()` exists, but no route exposes it.