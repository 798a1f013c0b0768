"""
Statistics aggregator for reporting endpoints.

Works on records already fetched and filtered by the caller (date range,
category, status). Computes:
  - total count
  - mean / min / max of a designated numeric field
  - per-group count and mean keyed by a categorical field

Empty input is a valid case: count=0, mean=0.0 (never NaN), no groups.
Groups only exist for keys that actually occur in the input.

Records whose numeric field is None count toward `count` but are left out
of the mean, min and max.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

Accessor = Callable[[Any], Any]


@dataclass
class GroupStats:
    count: int = 0
    mean: float = 0.0


@dataclass
class Summary:
    count: int = 0
    mean: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    groups: dict[Hashable, GroupStats] = field(default_factory=dict)


@dataclass
class _Running:
    count: int = 0
    valued: int = 0
    total: float = 0.0

    def add(self, value: float | None) -> None:
        self.count += 1
        if value is not None:
            self.valued += 1
            self.total += value

    @property
    def mean(self) -> float:
        return self.total / self.valued if self.valued else 0.0


def _accessor(source: str | Accessor) -> Accessor:
    if callable(source):
        return source

    def _get(record: Any) -> Any:
        if isinstance(record, dict):
            return record.get(source)
        return getattr(record, source, None)

    return _get


def _as_number(raw: Any) -> float | None:
    # Numeric columns come back as Decimal from asyncpg
    if raw is None:
        return None
    return float(raw)


def summarize(
    records: Iterable[Any],
    value: str | Accessor,
    group_by: str | Accessor | None = None,
) -> Summary:
    """
    Aggregate records in one pass.

    Args:
        records: Finite iterable of records (ORM objects or dicts).
        value: Numeric field name, or a callable returning the number.
        group_by: Categorical field name or callable. None skips grouping.
    """
    get_value = _accessor(value)
    get_group = _accessor(group_by) if group_by is not None else None

    overall = _Running()
    minimum: float | None = None
    maximum: float | None = None
    groups: dict[Hashable, _Running] = {}

    for record in records:
        number = _as_number(get_value(record))
        overall.add(number)
        if number is not None:
            minimum = number if minimum is None else min(minimum, number)
            maximum = number if maximum is None else max(maximum, number)
        if get_group is not None:
            key = get_group(record)
            groups.setdefault(key, _Running()).add(number)

    return Summary(
        count=overall.count,
        mean=overall.mean,
        minimum=minimum if minimum is not None else 0.0,
        maximum=maximum if maximum is not None else 0.0,
        groups={
            key: GroupStats(count=running.count, mean=running.mean)
            for key, running in groups.items()
        },
    )


def count_by(records: Iterable[Any], group_by: str | Accessor) -> dict[Hashable, int]:
    """Per-key counts, e.g. status breakdowns (active / pending / inactive)."""
    get_group = _accessor(group_by)
    counts: dict[Hashable, int] = {}
    for record in records:
        key = get_group(record)
        counts[key] = counts.get(key, 0) + 1
    return counts


def top_n(records: Iterable[Any], value: str | Accessor, n: int = 5) -> list[Any]:
    """Highest `value` first; records with no value sort last. Stable on ties."""
    get_value = _accessor(value)

    def _key(record: Any) -> tuple[bool, float]:
        number = _as_number(get_value(record))
        return (number is None, -(number or 0.0))

    return sorted(records, key=_key)[:n]
