"""Geographic area scopes and the resolver that turns them into filters.

An area assignment is a (province, city, county) triple where the finer
units may be absent (stored as NULL, read as 0). Resolution always uses the
most specific non-zero unit:

    county > 0  -> match county
    city > 0    -> match city
    otherwise   -> match province

So a "province 1" request sees every row under province 1, while a
"county 5" request only sees rows stored at county 5.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Union

from app.core.errors import ValidationFailure
from app.core.filters import AnyOf, AtLeast, Clause, Eq, Never

AREA_PROVINCE = "area.province"
AREA_CITY = "area.city"
AREA_COUNTY = "area.county"
ROLE_LEVEL = "role.level"


@dataclass(frozen=True)
class AreaScope:
    """One area assignment. Absent units are 0."""
    province: int
    city: int = 0
    county: int = 0

    def __post_init__(self):
        object.__setattr__(self, "province", int(self.province or 0))
        object.__setattr__(self, "city", int(self.city or 0))
        object.__setattr__(self, "county", int(self.county or 0))

    @classmethod
    def from_units(cls, units: Sequence[Optional[int]]) -> "AreaScope":
        """Build from an ordered [province, city, county] list (trailing units optional)."""
        if not units or len(units) > 3:
            raise ValidationFailure(f"Area must have 1 to 3 units, got {list(units)!r}")
        padded = list(units) + [0] * (3 - len(units))
        return cls(padded[0], padded[1], padded[2])

    @property
    def units(self) -> tuple:
        """Ordered units with trailing empty units dropped."""
        units = [self.province, self.city, self.county]
        while len(units) > 1 and not units[-1]:
            units.pop()
        return tuple(units)

    @property
    def most_specific(self) -> int:
        if self.county > 0:
            return self.county
        if self.city > 0:
            return self.city
        return self.province

    def cascade_clause(self) -> Clause:
        """Filter matching stored area rows that fall inside this scope."""
        if self.county > 0:
            return Eq(AREA_COUNTY, self.county)
        if self.city > 0:
            return Eq(AREA_CITY, self.city)
        return Eq(AREA_PROVINCE, self.province)


@dataclass(frozen=True)
class PeerScope:
    """Same scope as another user: the union of that user's assignments."""
    user_id: int


ScopeRequest = Union[AreaScope, PeerScope]


class AreaScopeResolver:
    """Builds the area + role-floor clauses for a scoped user query."""

    def __init__(self, areas_of: Callable[[int], Iterable[AreaScope]]):
        """Initialize resolver.

        Args:
            areas_of: Lookup returning a user's own area assignments
        """
        self.areas_of = areas_of

    def area_clause(self, scope: ScopeRequest) -> Clause:
        if isinstance(scope, AreaScope):
            return scope.cascade_clause()
        if isinstance(scope, PeerScope):
            peer_areas: List[AreaScope] = list(self.areas_of(scope.user_id))
            if not peer_areas:
                return Never()
            return AnyOf(tuple(area.cascade_clause() for area in peer_areas))
        raise ValidationFailure(f"Unsupported scope request: {scope!r}")

    def resolve(self, scope: ScopeRequest, min_role_level: int) -> List[Clause]:
        """Return the clauses every visible user must satisfy.

        The role floor requires at least one of the candidate's roles to have
        level >= ``min_role_level``.
        """
        return [self.area_clause(scope), AtLeast(ROLE_LEVEL, min_role_level)]
