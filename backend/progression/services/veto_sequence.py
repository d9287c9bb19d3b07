"""
Map veto ban order for best-of-one.

For a pool of N maps there are N-1 bans; the last map left is the pick.

  position 1        home
  positions 2, 3    away (double ban compensates for home banning first)
  positions 4..N-1  home on even positions, away on odd

  7 maps -> [home, away, away, home, away, home]
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, TypeVar

from progression.services.errors import InvalidMapPool

T = TypeVar("T")

MIN_MAP_POOL = 2


def generate_ban_sequence(home_team_id: T, away_team_id: T, total_maps: int) -> List[T]:
    """Acting team for each ban position (index 0 = position 1)."""
    if total_maps < MIN_MAP_POOL:
        raise InvalidMapPool(f"A veto needs at least {MIN_MAP_POOL} maps, got {total_maps}")

    sequence: List[T] = []
    for position in range(1, total_maps):
        if position == 1:
            sequence.append(home_team_id)
        elif position in (2, 3):
            sequence.append(away_team_id)
        elif position % 2 == 0:
            sequence.append(home_team_id)
        else:
            sequence.append(away_team_id)
    return sequence


def validate_map_pool(raw: Optional[Iterable[Any]]) -> List[str]:
    """Normalize a stored map pool into an ordered list of unique map ids.

    Raises InvalidMapPool for a missing pool, non-string or blank entries,
    duplicates, or fewer than two maps.
    """
    if raw is None:
        raise InvalidMapPool("Tournament has no map pool defined")
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise InvalidMapPool(f"Map pool must be a list of map ids, got {type(raw).__name__}")

    pool: List[str] = []
    for entry in raw:
        if not isinstance(entry, str) or not entry.strip():
            raise InvalidMapPool(f"Invalid map id in pool: {entry!r}")
        map_id = entry.strip()
        if map_id in pool:
            raise InvalidMapPool(f"Duplicate map in pool: {map_id}")
        pool.append(map_id)

    if len(pool) < MIN_MAP_POOL:
        raise InvalidMapPool(f"A veto needs at least {MIN_MAP_POOL} maps, got {len(pool)}")
    return pool
