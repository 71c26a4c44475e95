"""Route patterns and method-aware request dispatch."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Union
from urllib.parse import unquote_to_bytes

from .web import HttpError, Request, Response

Constraint = Callable[[str], bool]
Handler = Callable[[Request, Any], Any]
Parameters = list[tuple[str, str]]

DEFAULT_METHODS = (
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "HEAD",
    "OPTIONS",
    "CONNECT",
    "PATCH",
    "TRACE",
)

_ESCAPABLE = "{}()"


@dataclass(frozen=True)
class _Text:
    text: str


@dataclass(frozen=True)
class _Param:
    name: str
    wildcard: bool = False
    constraint: str | None = None

    @property
    def rank(self) -> int:
        if self.wildcard:
            return 3 if self.constraint else 4
        return 1 if self.constraint else 2


@dataclass(frozen=True)
class _Group:
    items: tuple[_Item, ...]


_Item = Union[_Text, _Param, _Group]
_Token = Union[_Text, _Param]


def _parse_param(content: str, route: str) -> _Param:
    wildcard = content.startswith("*")
    if wildcard:
        content = content[1:]
    name, separator, constraint = content.partition(":")
    if not name:
        raise ValueError(f"Empty parameter name in route {route!r}")
    if "{" in name or (separator and not constraint):
        raise ValueError(f"Invalid parameter in route {route!r}")
    return _Param(name, wildcard, constraint if separator else None)


def _parse(route: str) -> list[_Item]:
    pos = 0

    def group(depth: int) -> list[_Item]:
        nonlocal pos
        items: list[_Item] = []
        text: list[str] = []

        def flush() -> None:
            if text:
                items.append(_Text("".join(text)))
                text.clear()

        while pos < len(route):
            char = route[pos]
            if char == "\\" and pos + 1 < len(route) and route[pos + 1] in _ESCAPABLE:
                text.append(route[pos + 1])
                pos += 2
            elif char == "{":
                end = route.find("}", pos + 1)
                if end == -1:
                    raise ValueError(f"Unclosed parameter in route {route!r}")
                flush()
                items.append(_parse_param(route[pos + 1 : end], route))
                pos = end + 1
            elif char == "(":
                flush()
                pos += 1
                inner = group(depth + 1)
                if not inner:
                    raise ValueError(f"Empty optional group in route {route!r}")
                items.append(_Group(tuple(inner)))
            elif char == ")":
                if depth == 0:
                    raise ValueError(f"Unbalanced ')' in route {route!r}")
                flush()
                pos += 1
                return items
            elif char == "}":
                raise ValueError(f"Unbalanced '}}' in route {route!r}")
            else:
                text.append(char)
                pos += 1

        if depth:
            raise ValueError(f"Unclosed optional group in route {route!r}")
        flush()
        return items

    return group(0)


def _param_names(items: list[_Item] | tuple[_Item, ...]) -> Iterator[str]:
    for item in items:
        if isinstance(item, _Param):
            yield item.name
        elif isinstance(item, _Group):
            yield from _param_names(item.items)


def _expand(items: list[_Item] | tuple[_Item, ...]) -> list[list[_Token]]:
    results: list[list[_Token]] = [[]]
    for item in items:
        options = [[]] + _expand(item.items) if isinstance(item, _Group) else [[item]]
        results = [done + option for done in results for option in options]
    return results


def _normalise(tokens: list[_Token]) -> tuple[_Token, ...]:
    merged: list[_Token] = []
    for token in tokens:
        if isinstance(token, _Text) and merged and isinstance(merged[-1], _Text):
            merged[-1] = _Text(merged[-1].text + token.text)
        else:
            merged.append(token)
    return tuple(merged) or (_Text("/"),)


def _priority(tokens: tuple[_Token, ...]) -> tuple[tuple[int, int], ...]:
    return tuple(
        (0, -len(token.text)) if isinstance(token, _Text) else (token.rank, 0)
        for token in tokens
    )


class RoutePattern:
    """A route template with parameters, wildcards, constraints and optional groups.

    ``{name}`` matches within one segment, ``{*name}`` across segments,
    ``{name:constraint}`` adds a check, ``( ... )`` marks an optional part and
    ``\\{``, ``\\}``, ``\\(``, ``\\)`` are literal characters.
    """

    def __init__(self, route: str, constraints: Mapping[str, Constraint] | None = None) -> None:
        self.route = route
        constraints = dict(constraints or {})
        tree = _parse(route)

        seen: set[str] = set()
        for name in _param_names(tree):
            if name in seen:
                raise ValueError(f"Duplicate parameter {name!r} in route {route!r}")
            seen.add(name)

        variants: list[tuple[_Token, ...]] = []
        for expansion in _expand(tree):
            tokens = _normalise(expansion)
            if tokens not in variants:
                variants.append(tokens)
        self.variants: tuple[tuple[_Token, ...], ...] = tuple(variants)

        self._checks: dict[str, Constraint] = {}
        for tokens in self.variants:
            for token in tokens:
                if isinstance(token, _Param) and token.constraint is not None:
                    if token.constraint not in constraints:
                        raise ValueError(f"Unknown constraint: {token.constraint}")
                    self._checks[token.constraint] = constraints[token.constraint]

    def __repr__(self) -> str:
        return f"RoutePattern({self.route!r})"

    def _match_tokens(self, tokens: tuple[_Token, ...], path: str) -> Parameters | None:
        def walk(index: int, pos: int) -> Parameters | None:
            if index == len(tokens):
                return [] if pos == len(path) else None
            token = tokens[index]
            if isinstance(token, _Text):
                if path.startswith(token.text, pos):
                    return walk(index + 1, pos + len(token.text))
                return None

            if token.wildcard:
                limit = len(path)
            else:
                slash = path.find("/", pos)
                limit = len(path) if slash == -1 else slash
            following = tokens[index + 1] if index + 1 < len(tokens) else None
            check = self._checks.get(token.constraint) if token.constraint else None

            for end in range(limit, pos, -1):
                if isinstance(following, _Text) and not path.startswith(following.text, end):
                    continue
                value = path[pos:end]
                if check is not None and not check(value):
                    continue
                rest = walk(index + 1, end)
                if rest is not None:
                    return [(token.name, value), *rest]
            return None

        return walk(0, 0)

    def _candidates(self, path: str) -> Iterator[tuple[tuple[tuple[int, int], ...], Parameters]]:
        for tokens in self.variants:
            params = self._match_tokens(tokens, path)
            if params is not None:
                yield _priority(tokens), params

    def match(self, path: str) -> Parameters | None:
        """Return the parameters captured from ``path``, or None if it does not match."""
        best = min(self._candidates(path), key=lambda candidate: candidate[0], default=None)
        return None if best is None else best[1]


def _into_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    if hasattr(result, "to_response"):
        return result.to_response()
    return Response.empty(HTTPStatus(result))


class AppRouter:
    """Dispatches requests to handlers by method and path."""

    def __init__(self) -> None:
        self._constraints: dict[str, Constraint] = {}
        self._routes: dict[str, list[tuple[RoutePattern, Handler]]] = {
            method: [] for method in DEFAULT_METHODS
        }

    def path_constraint(self, name: str, check: Constraint) -> None:
        """Register a named check usable as ``{param:name}`` in later routes."""
        if name in self._constraints:
            raise ValueError(f"Duplicate constraint name: {name}")
        self._constraints[name] = check

    def route(self, method: str, path: str, handler: Handler) -> None:
        """Register ``handler`` for ``method`` requests matching ``path``."""
        pattern = RoutePattern(path, self._constraints)
        table = self._routes.setdefault(method.upper(), [])
        for existing, _ in table:
            if set(existing.variants) & set(pattern.variants):
                raise ValueError(
                    f"Duplicate route {path!r} conflicts with {existing.route!r}"
                )
        table.append((pattern, handler))

    def _search(
        self, table: list[tuple[RoutePattern, Handler]], path: str
    ) -> tuple[RoutePattern, Handler, Parameters] | None:
        best = None
        for order, (pattern, handler) in enumerate(table):
            for key, params in pattern._candidates(path):
                rank = (key, order)
                if best is None or rank < best[0]:
                    best = (rank, pattern, handler, params)
        return None if best is None else best[1:]

    async def handle(self, request: Request, state: Any) -> Response:
        """Route ``request`` to its handler and return the handler's response."""
        try:
            path = unquote_to_bytes(request.path).decode("utf-8")
        except UnicodeDecodeError:
            return Response(HTTPStatus.NOT_FOUND, body=b"Not Found")

        table = self._routes.get(request.method)
        if table is None:
            return Response.empty(HTTPStatus.METHOD_NOT_ALLOWED)

        found = self._search(table, path)
        if found is None:
            return Response.empty(HTTPStatus.NOT_FOUND)

        pattern, handler, params = found
        request.route = pattern.route
        request.params = params

        try:
            result = handler(request, state)
            if inspect.isawaitable(result):
                result = await result
        except HttpError as err:
            return err.to_response()
        return _into_response(result)