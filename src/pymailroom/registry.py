"""Static catalog of locations grouped by neighborhood."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence

from pymailroom.exceptions import MailroomConfigError
from pymailroom.models.location import LocationRecord


class LocationRegistry:
    """Ordered neighborhood -> location-name grouping.

    The registry defines the fixed universe of valid location names.  It is
    read-only once built; group and name order is preserved for display.
    """

    def __init__(self, neighborhoods: Mapping[str, Sequence[str]]) -> None:
        groups: dict[str, tuple[str, ...]] = {}
        owner: dict[str, str] = {}
        for neighborhood, names in neighborhoods.items():
            title = neighborhood.strip()
            if not title:
                raise MailroomConfigError("neighborhood name must be non-empty")
            if isinstance(names, str):
                raise MailroomConfigError(f"neighborhood {title!r} must list names, not a single string")
            cleaned: list[str] = []
            for raw_name in names:
                name = raw_name.strip()
                if not name:
                    raise MailroomConfigError(f"blank location name in {title!r}")
                if name in owner:
                    raise MailroomConfigError(f"location {name!r} listed in both {owner[name]!r} and {title!r}")
                owner[name] = title
                cleaned.append(name)
            if not cleaned:
                raise MailroomConfigError(f"neighborhood {title!r} has no locations")
            groups[title] = tuple(cleaned)
        self._groups = groups
        self._owner = owner

    def __contains__(self, name: object) -> bool:
        return name in self._owner

    def __iter__(self) -> Iterator[str]:
        return iter(self._owner)

    def __len__(self) -> int:
        return len(self._owner)

    def __repr__(self) -> str:
        return f"LocationRegistry({len(self._groups)} neighborhoods, {len(self._owner)} locations)"

    @property
    def neighborhoods(self) -> dict[str, tuple[str, ...]]:
        return dict(self._groups)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._owner)

    @property
    def ordered_names(self) -> tuple[str, ...]:
        return tuple(self._owner)

    def neighborhood_of(self, name: str) -> str | None:
        return self._owner.get(name)

    def default_record(self, name: str) -> LocationRecord:
        """The record shown for a location nobody has reported yet."""
        return LocationRecord(name=name)

    def default_records(self) -> list[LocationRecord]:
        return [self.default_record(name) for name in self._owner]


DEFAULT_REGISTRY = LocationRegistry(
    {
        "East Neighborhood": (
            "DellPlain Hall",
            "Ernie Davis Hall",
            "Oren Lyons Hall",
            "Shaw Hall",
            "Watson Hall",
        ),
        "Mount Olympus Neighborhood": (
            "Day Hall",
            "Flint Hall",
        ),
        "North Neighborhood": (
            "Booth Hall",
            "Haven Hall",
            "Milton Hall",
            "Orange Hall",
            "Walnut Hall",
            "Washington Arms Hall",
        ),
        "West Neighborhood": (
            "Boland Hall",
            "Brewster Hall",
            "Brockway Hall",
            "Lawrinson Hall",
            "Sadler Hall",
        ),
    }
)
