from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlsplit

from medequip.services.route_guards import GUARDS


@dataclass(frozen=True)
class RouteDefinition:
    name: str
    pattern: str
    guard: str


ROUTES = (
    RouteDefinition("clinic_login", "/login", "public"),
    RouteDefinition("admin_login", "/admin-login", "public"),
    RouteDefinition("auth", "/auth", "public"),
    RouteDefinition("home", "/", "clinic"),
    RouteDefinition("machines", "/machines", "clinic"),
    RouteDefinition("machine_detail", "/machines/:id", "clinic"),
    RouteDefinition("payment", "/payment/:id", "clinic"),
    RouteDefinition("rentals", "/rentals", "clinic"),
    RouteDefinition("admin", "/admin", "admin"),
)
NOT_FOUND = RouteDefinition("not_found", "*", "public")
DETAIL_ACTIONS = {"buy", "rent"}


def _split(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/") if part]


def _match(route: RouteDefinition, parts: list[str]) -> dict[str, str] | None:
    pattern_parts = _split(route.pattern)
    if len(pattern_parts) != len(parts):
        return None
    params: dict[str, str] = {}
    for expected, actual in zip(pattern_parts, parts):
        if expected.startswith(":"):
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


def match_route(path: str) -> tuple[RouteDefinition, dict[str, str]]:
    parts = _split(urlsplit(path or "/").path)
    for route in ROUTES:
        params = _match(route, parts)
        if params is not None:
            return route, params
    return NOT_FOUND, {}


def resolve_navigation(path: str, resolver: Any) -> dict[str, Any]:
    route, params = match_route(path)
    query = parse_qs(urlsplit(path or "/").query)
    action = (query.get("action") or [None])[0]
    if route.name != "machine_detail" or action not in DETAIL_ACTIONS:
        action = None
    decision = GUARDS[route.guard](resolver)
    return {
        "route": route.name,
        "params": params,
        "action": action,
        "guard": route.guard,
        "decision": decision.as_dict(),
    }
