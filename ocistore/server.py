"""HTTP server exposing the registry over HTTP/1.1."""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import suppress
from http import HTTPStatus

import h11

from . import registry
from .names import NAME_CONSTRAINT, is_valid_name
from .router import AppRouter
from .state import AppState
from .web import BodyError, Request, Response

logger = logging.getLogger(__name__)

_READ_SIZE = 65536


def build_router() -> AppRouter:
    """Create a router with every registry endpoint registered."""
    router = AppRouter()
    router.path_constraint(NAME_CONSTRAINT, is_valid_name)

    # end-1
    router.route("GET", "/v2(/)", registry.handle_root_get)

    # end-2
    router.route("GET", "/v2/{*name:name}/blobs/{digest}(/)", registry.handle_blob_pull)
    router.route("HEAD", "/v2/{*name:name}/blobs/{digest}(/)", registry.handle_blob_pull)

    # end-3
    router.route(
        "GET", "/v2/{*name:name}/manifests/{reference}(/)", registry.handle_manifest_pull
    )
    router.route(
        "HEAD", "/v2/{*name:name}/manifests/{reference}(/)", registry.handle_manifest_pull
    )

    # end-4a / end-4b
    router.route(
        "POST", "/v2/{*name:name}/blobs/uploads(/)", registry.handle_blob_push_post
    )

    # end-6
    router.route(
        "PUT",
        "/v2/{*name:name}/blobs/uploads/{reference}(/)",
        registry.handle_blob_push_put,
    )

    # end-7
    router.route(
        "PUT", "/v2/{*name:name}/manifests/{reference}(/)", registry.handle_manifest_put
    )

    # end-8a
    router.route("GET", "/v2/{*name:name}/tags/list(/)", registry.handle_tags_get)

    # end-9
    router.route(
        "DELETE",
        "/v2/{*name:name}/manifests/{reference}(/)",
        registry.handle_manifest_delete,
    )

    # end-10
    router.route(
        "DELETE", "/v2/{*name:name}/blobs/{digest}(/)", registry.handle_blob_delete
    )

    return router


async def _next_event(conn: h11.Connection, reader: asyncio.StreamReader):
    while True:
        event = conn.next_event()
        if event is h11.NEED_DATA:
            conn.receive_data(await reader.read(_READ_SIZE))
            continue
        return event


async def _read_body(conn: h11.Connection, reader: asyncio.StreamReader) -> bytes:
    body = bytearray()
    while True:
        event = await _next_event(conn, reader)
        if isinstance(event, h11.Data):
            body.extend(event.data)
        elif isinstance(event, h11.EndOfMessage):
            return bytes(body)
        else:
            raise BodyError(f"unexpected event {type(event).__name__}")


def _to_request(event: h11.Request, body: bytes) -> Request:
    target = event.target.decode("latin-1")
    path, separator, query = target.partition("?")
    headers = {
        name.decode("latin-1"): value.decode("latin-1") for name, value in event.headers
    }
    return Request(
        event.method.decode("latin-1"),
        path,
        query=query if separator else None,
        headers=headers,
        body=body,
    )


async def _send(
    conn: h11.Connection,
    writer: asyncio.StreamWriter,
    response: Response,
    head: bool,
) -> None:
    # Outside of HEAD, the declared length always matches the bytes sent.
    headers = [
        (name, value)
        for name, value in response.headers.items()
        if head or name.lower() != "content-length"
    ]
    if not any(name.lower() == "content-length" for name, _ in headers):
        headers.append(("Content-Length", str(len(response.body))))

    data = conn.send(
        h11.Response(
            status_code=response.status.value,
            headers=headers,
            reason=response.status.phrase,
        )
    )
    if response.body and not head:
        data += conn.send(h11.Data(data=response.body))
    data += conn.send(h11.EndOfMessage())
    writer.write(data)
    await writer.drain()


async def _serve_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    router: AppRouter,
    state: AppState,
) -> None:
    peer_addr = writer.get_extra_info("peername")
    logger.info("handling a request peer_addr=%s", peer_addr)
    conn = h11.Connection(h11.SERVER)

    try:
        while True:
            event = await _next_event(conn, reader)
            if not isinstance(event, h11.Request):
                break
            head = event.method == b"HEAD"

            try:
                body = await _read_body(conn, reader)
            except (OSError, h11.RemoteProtocolError, BodyError) as err:
                failure = err if isinstance(err, BodyError) else BodyError(err)
                with suppress(h11.LocalProtocolError):
                    await _send(conn, writer, failure.to_response(), head)
                break

            response = await router.handle(_to_request(event, body), state)
            await _send(conn, writer, response, head)

            if conn.our_state is h11.MUST_CLOSE:
                break
            conn.start_next_cycle()
    except h11.RemoteProtocolError as err:
        logger.error("error serving connection error=%s peer_addr=%s", err, peer_addr)
        if conn.our_state not in (h11.DONE, h11.MUST_CLOSE, h11.CLOSED):
            with suppress(h11.LocalProtocolError, OSError):
                await _send(
                    conn, writer, Response.empty(HTTPStatus(err.error_status_hint)), False
                )
    except OSError as err:
        logger.error("error serving connection error=%s peer_addr=%s", err, peer_addr)
    finally:
        writer.close()
        with suppress(OSError):
            await writer.wait_closed()
        logger.info("handled a request peer_addr=%s", peer_addr)


async def start_server(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the registry on ``host:port`` until cancelled."""
    state = AppState()
    router = build_router()

    async def on_connection(
        reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        await _serve_connection(reader, writer, router, state)

    server = await asyncio.start_server(on_connection, host, port)
    addresses = ", ".join(str(sock.getsockname()) for sock in server.sockets)
    logger.info("listening on http address=%s", addresses)
    async with server:
        await server.serve_forever()


def main(argv: list[str] | None = None) -> int:
    """Run the registry server from the command line."""
    parser = argparse.ArgumentParser(
        prog="ocistore", description="In-memory container image registry."
    )
    parser.add_argument("--host", default="127.0.0.1", help="address to bind")
    parser.add_argument("--port", type=int, default=8000, help="port to bind")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    with suppress(KeyboardInterrupt):
        asyncio.run(start_server(args.host, args.port))
    return 0