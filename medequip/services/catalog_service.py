from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from medequip.schemas.machines import MachineRecord


ALL = "all"
FEATURED_LIMIT = 3
CONDITION_OPTIONS = [ALL, "Excellent", "Good", "Fair"]
AvailabilityMode = Literal["all", "available", "unavailable"]


@dataclass(frozen=True)
class CatalogFilter:
    search: str = ""
    category: str = ALL
    condition: str = ALL
    min_price: float = 0
    max_price: float | None = None
    availability: AvailabilityMode = ALL


def _matches_search(machine: MachineRecord, search: str) -> bool:
    needle = search.lower()
    if not needle:
        return True
    return (
        needle in machine.machineName.lower()
        or needle in machine.type.lower()
        or needle in machine.description.lower()
    )


def _matches_availability(machine: MachineRecord, mode: str) -> bool:
    if mode == "available":
        return machine.availability
    if mode == "unavailable":
        return not machine.availability
    return True


def matches(machine: MachineRecord, filters: CatalogFilter) -> bool:
    if not _matches_search(machine, filters.search):
        return False
    if filters.category != ALL and machine.category != filters.category:
        return False
    if filters.condition != ALL and machine.condition != filters.condition:
        return False
    if machine.price < filters.min_price:
        return False
    if filters.max_price is not None and machine.price > filters.max_price:
        return False
    return _matches_availability(machine, filters.availability)


def filter_machines(machines: Iterable[MachineRecord], filters: CatalogFilter) -> list[MachineRecord]:
    return [machine for machine in machines if matches(machine, filters)]


def featured_machines(machines: Iterable[MachineRecord], limit: int = FEATURED_LIMIT) -> list[MachineRecord]:
    """First ``limit`` available machines, in catalog order, for the home page."""
    featured: list[MachineRecord] = []
    for machine in machines:
        if len(featured) >= limit:
            break
        if machine.availability:
            featured.append(machine)
    return featured


def category_options(machines: Iterable[MachineRecord]) -> list[str]:
    seen: set[str] = set()
    options = [ALL]
    for machine in machines:
        if machine.category in seen:
            continue
        seen.add(machine.category)
        options.append(machine.category)
    return options


class CatalogView:
    """One catalog snapshot with results memoized per filter tuple.

    Build a new view whenever the catalog changes; a view never sees writes.
    """

    def __init__(self, machines: Iterable[MachineRecord]):
        self._machines = tuple(machines)
        self._cache: dict[CatalogFilter, tuple[MachineRecord, ...]] = {}

    @property
    def machines(self) -> tuple[MachineRecord, ...]:
        return self._machines

    def filtered(self, filters: CatalogFilter) -> list[MachineRecord]:
        cached = self._cache.get(filters)
        if cached is None:
            cached = tuple(filter_machines(self._machines, filters))
            self._cache[filters] = cached
        return list(cached)

    def facets(self) -> dict[str, list[str]]:
        return {
            "categories": category_options(self._machines),
            "conditions": list(CONDITION_OPTIONS),
        }
