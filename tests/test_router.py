import json
from http import HTTPStatus

import pytest

from ocistore.names import is_valid_name
from ocistore.router import AppRouter, RoutePattern
from ocistore.web import PathError, Request, Response


def _name_check(segment):
    return all(c.isalnum() or c == "/" for c in segment)


def _numbered(number):
    async def handler(request, state):
        return Response(HTTPStatus.OK, body=str(number).encode())

    return handler


async def _body_of(router, path, method="GET"):
    response = await router.handle(Request(method, path), None)
    return response.status, response.body


def test_dynamic_simple():
    pattern = RoutePattern("/{id}")
    assert pattern.match("/123") == [("id", "123")]
    assert pattern.match("/") is None


def test_dynamic_multiple():
    assert RoutePattern("/{year}/{month}/{day}").match("/2024/12/01") == [
        ("year", "2024"),
        ("month", "12"),
        ("day", "01"),
    ]
    assert RoutePattern("/{year}/{month}").match("/2024/12/01") is None


def test_dynamic_inline():
    assert RoutePattern("/{year}-{month}").match("/2024-12") == [
        ("year", "2024"),
        ("month", "12"),
    ]


def test_dynamic_greedy():
    pattern = RoutePattern("/{file}.{extension}")
    assert pattern.match("/report") is None
    assert pattern.match("/report.pdf") == [("file", "report"), ("extension", "pdf")]
    assert pattern.match("/report.final.pdf") == [
        ("file", "report.final"),
        ("extension", "pdf"),
    ]


def test_wildcard_simple():
    pattern = RoutePattern("/{*path}/delete")
    assert pattern.match("/docs/delete") == [("path", "docs")]
    assert pattern.match("/nested/docs/folder/delete") == [("path", "nested/docs/folder")]
    assert pattern.match("/delete") is None


def test_wildcard_multiple():
    pattern = RoutePattern("/{*prefix}/static/{*suffix}/file")
    assert pattern.match("/a/b/c/static/d/e/f/file") == [
        ("prefix", "a/b/c"),
        ("suffix", "d/e/f"),
    ]


def test_wildcard_inline():
    pattern = RoutePattern("/{*path}.html")
    assert pattern.match("/nested/page.html") == [("path", "nested/page")]
    assert pattern.match("/.html") is None


def test_wildcard_greedy():
    pattern = RoutePattern("/{*first}-{*second}")
    assert pattern.match("/a-b-c") == [("first", "a-b"), ("second", "c")]
    assert pattern.match("/path/to/some-file/with-multiple-hyphens") == [
        ("first", "path/to/some-file/with-multiple"),
        ("second", "hyphens"),
    ]


def test_wildcard_empty_segments():
    pattern = RoutePattern("/{*path}/end")
    assert pattern.match("/start//middle///end") == [("path", "start//middle//")]


def test_optional_starting():
    pattern = RoutePattern("(/{lang})/users")
    assert pattern.match("/en/users") == [("lang", "en")]
    assert pattern.match("/users") == []


def test_optional_ending():
    pattern = RoutePattern("/users(/)")
    assert pattern.match("/users") == []
    assert pattern.match("/users/") == []
    assert pattern.match("/users//") is None


def test_optional_nested():
    pattern = RoutePattern("(/a(/b(/c)))")
    for path in ("/a/b/c", "/a/b", "/a", "/"):
        assert pattern.match(path) == []
    assert pattern.match("/b") is None


def test_optional_touching():
    pattern = RoutePattern("(/a)(/b)(/c)")
    for path in ("/a/b/c", "/a/b", "/a/c", "/a", "/b/c", "/b", "/c", "/"):
        assert pattern.match(path) == []
    assert pattern.match("/c/a") is None


def test_escape_parameter():
    pattern = RoutePattern(r"/users/\{id\}")
    assert pattern.match("/users/{id}") == []
    assert pattern.match("/users/123") is None


def test_escape_group():
    pattern = RoutePattern(r"/\(not-optional\)")
    assert pattern.match("/(not-optional)") == []
    assert pattern.match("/optional") is None


def test_escape_nested():
    pattern = RoutePattern(r"(/a(/\{param\}))")
    assert pattern.match("/a/{param}") == []
    assert pattern.match("/a/value") is None
    assert pattern.match("/a") == []


def test_constraint_dynamic():
    pattern = RoutePattern("/users/{id:name}", {"name": _name_check})
    assert pattern.match("/users/john123") == [("id", "john123")]
    assert pattern.match("/users/john@123") is None


def test_constraint_wildcard():
    pattern = RoutePattern("/users/{*path:name}", {"name": _name_check})
    assert pattern.match("/users/john/doe123") == [("path", "john/doe123")]
    assert pattern.match("/users/john@doe/123") is None


def test_constraint_unknown():
    with pytest.raises(ValueError, match="unknown"):
        RoutePattern("/users/{id:unknown}")


def test_duplicate_parameter():
    with pytest.raises(ValueError, match="id"):
        RoutePattern("/{*id}/users/{id}")


@pytest.mark.parametrize("route", ["(/a", "/a)", "/{id", "/a}", "/()", "/{}"])
def test_malformed_routes(route):
    with pytest.raises(ValueError):
        RoutePattern(route)


def test_oci_name_constraint():
    pattern = RoutePattern(
        "/v2/{*name:name}/blobs/{digest}(/)", {"name": is_valid_name}
    )
    assert pattern.match("/v2/library/ubuntu/blobs/sha256:abc") == [
        ("name", "library/ubuntu"),
        ("digest", "sha256:abc"),
    ]
    assert pattern.match("/v2/Library/blobs/sha256:abc") is None


def test_router_duplicate_route():
    router = AppRouter()
    router.route("GET", "/test", _numbered(1))
    with pytest.raises(ValueError):
        router.route("GET", "/test", _numbered(2))
    with pytest.raises(ValueError):
        router.route("GET", "(/test)", _numbered(2))


def test_router_same_path_other_method_allowed():
    router = AppRouter()
    router.route("GET", "/test", _numbered(1))
    router.route("HEAD", "/test", _numbered(2))
    with pytest.raises(ValueError):
        router.route("HEAD", "/test", _numbered(3))


def test_router_duplicate_constraint():
    router = AppRouter()
    router.path_constraint("test", lambda s: s == "1")
    with pytest.raises(ValueError, match="test"):
        router.path_constraint("test", lambda s: s == "2")


def test_router_unknown_constraint():
    router = AppRouter()
    with pytest.raises(ValueError, match="unknown"):
        router.route("GET", "/users/{id:unknown}", _numbered(1))


@pytest.mark.asyncio
async def test_router_dynamic_priority():
    router = AppRouter()
    router.route("GET", "/robots.txt", _numbered(1))
    router.route("GET", "/robots.{extension}", _numbered(2))
    router.route("GET", "/{name}.txt", _numbered(3))
    router.route("GET", "/{name}.{extension}", _numbered(4))

    assert await _body_of(router, "/robots.txt") == (HTTPStatus.OK, b"1")
    assert await _body_of(router, "/robots.pdf") == (HTTPStatus.OK, b"2")
    assert await _body_of(router, "/config.txt") == (HTTPStatus.OK, b"3")
    assert await _body_of(router, "/config.pdf") == (HTTPStatus.OK, b"4")


@pytest.mark.asyncio
async def test_router_wildcard_priority():
    router = AppRouter()
    router.route("GET", "/static/path", _numbered(1))
    router.route("GET", "/static/{*rest}", _numbered(2))
    router.route("GET", "/{*path}/static", _numbered(3))
    router.route("GET", "/prefix.{*suffix}", _numbered(4))
    router.route("GET", "/{*prefix}.suffix", _numbered(5))

    assert (await _body_of(router, "/static/path"))[1] == b"1"
    assert (await _body_of(router, "/static/some/nested/path"))[1] == b"2"
    assert (await _body_of(router, "/some/nested/path/static"))[1] == b"3"
    assert (await _body_of(router, "/prefix.some/nested/path"))[1] == b"4"
    assert (await _body_of(router, "/some/nested/path.suffix"))[1] == b"5"


@pytest.mark.asyncio
async def test_router_sets_route_and_params():
    router = AppRouter()
    seen = {}

    async def handler(request, state):
        seen["route"] = request.route
        seen["params"] = request.params
        seen["state"] = state
        return HTTPStatus.OK

    router.route("GET", "/users/{id}", handler)
    response = await router.handle(Request("GET", "/users/john%20doe"), "shared")
    assert response.status == HTTPStatus.OK
    assert response.body == b""
    assert seen == {
        "route": "/users/{id}",
        "params": [("id", "john doe")],
        "state": "shared",
    }


@pytest.mark.asyncio
async def test_router_sync_handler():
    router = AppRouter()
    router.route("post", "/items", lambda request, state: Response(HTTPStatus.CREATED))
    response = await router.handle(Request("POST", "/items"), None)
    assert response.status == HTTPStatus.CREATED


@pytest.mark.asyncio
async def test_router_method_not_allowed():
    router = AppRouter()
    router.route("GET", "/", _numbered(1))
    response = await router.handle(Request("FOO", "/"), None)
    assert response.status == HTTPStatus.METHOD_NOT_ALLOWED


@pytest.mark.asyncio
async def test_router_not_found():
    router = AppRouter()
    router.route("GET", "/users/{id}", _numbered(1))
    assert await _body_of(router, "/users") == (HTTPStatus.NOT_FOUND, b"")
    assert await _body_of(router, "/users/1", method="PUT") == (HTTPStatus.NOT_FOUND, b"")


@pytest.mark.asyncio
async def test_router_undecodable_path():
    router = AppRouter()
    router.route("GET", "/{id}", _numbered(1))
    assert await _body_of(router, "/%ff") == (HTTPStatus.NOT_FOUND, b"Not Found")


@pytest.mark.asyncio
async def test_router_handler_error_becomes_response():
    router = AppRouter()

    async def handler(request, state):
        return request.path_params(2)

    router.route("GET", "/users/{id}", handler)
    response = await router.handle(Request("GET", "/users/7"), None)
    assert response.status == HTTPStatus.BAD_REQUEST
    document = json.loads(response.body)
    assert document["error"]["message"] == str(PathError._wrong_number(2, 1))


@pytest.mark.asyncio
async def test_router_constraint_applies_to_routes():
    router = AppRouter()
    router.path_constraint("name", is_valid_name)
    router.route("GET", "/v2/{*name:name}/tags/list(/)", _numbered(1))
    assert await _body_of(router, "/v2/library/ubuntu/tags/list/") == (HTTPStatus.OK, b"1")
    assert (await _body_of(router, "/v2/UPPER/tags/list"))[0] == HTTPStatus.NOT_FOUND