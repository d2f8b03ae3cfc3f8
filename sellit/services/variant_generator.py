# sellit/services/variant_generator.py
"""
Variant generator: cartesian product of selected attribute values merged with
the variants a product already has.

Pure module: no DB, no I/O. Catalog attributes are duck-typed (anything with
`id`, `name`, `values`; each value with `id`, `value`, `color_hex`), so ORM
rows and plain test doubles both work.

Identity of a variant is the unordered set of (attribute_id, value_id) pairs,
stored as a canonical key "3-10|5-22" (pairs sorted numerically).
"""

from __future__ import annotations

import itertools
import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sellit.core.exceptions import BadRequestError, NoValidAttributesError


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
def identity_key(pairs: Iterable[tuple[int, int]]) -> str:
    return "|".join(f"{a}-{v}" for a, v in sorted({(int(a), int(v)) for a, v in pairs}))


def attribute_pairs(attributes: Iterable[Mapping[str, Any]]) -> list[tuple[int, int]]:
    return [(int(a["attribute_id"]), int(a["value_id"])) for a in attributes]


def variant_identity(variant: Any) -> str:
    """Key of a variant given as a dict or an object with `.attributes`."""
    attrs = variant["attributes"] if isinstance(variant, Mapping) else variant.attributes
    return identity_key(attribute_pairs(attrs or []))


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ResolvedValue:
    attribute_id: int
    attribute_name: str
    value_id: int
    value: str
    color_hex: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "attribute_id": self.attribute_id,
            "attribute_name": self.attribute_name,
            "value_id": self.value_id,
            "value": self.value,
            "color_hex": self.color_hex,
        }


@dataclass
class Combination:
    """One cartesian combination; `existing` is the prior variant it matched, if any."""

    values: tuple[ResolvedValue, ...]
    key: str
    existing: Any = None

    @property
    def attributes(self) -> list[dict[str, Any]]:
        return [v.as_dict() for v in self.values]

    @property
    def is_new(self) -> bool:
        return self.existing is None


@dataclass
class Selection:
    attribute_id: int
    selected_value_ids: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------
def resolve_selection(
    selections: Sequence[Any],
    catalog: Mapping[int, Any],
) -> list[list[ResolvedValue]]:
    """
    Resolve each selection against the catalog, keeping catalog value order.

    Missing attributes and selections that resolve to nothing are dropped.
    """
    resolved: list[list[ResolvedValue]] = []
    for sel in selections:
        attribute_id = int(sel.attribute_id)
        attr = catalog.get(attribute_id)
        if attr is None:
            continue
        wanted = {int(v) for v in (sel.selected_value_ids or [])}
        values = [
            ResolvedValue(
                attribute_id=attribute_id,
                attribute_name=attr.name,
                value_id=int(v.id),
                value=v.value,
                color_hex=v.color_hex,
            )
            for v in attr.values
            if int(v.id) in wanted
        ]
        if values:
            resolved.append(values)
    return resolved


def count_combinations(value_lists: Sequence[Sequence[Any]]) -> int:
    return math.prod(len(vs) for vs in value_lists)


def cartesian(value_lists: Sequence[Sequence[ResolvedValue]]) -> Iterator[tuple[ResolvedValue, ...]]:
    # product() of zero lists yields one empty tuple
    return itertools.product(*value_lists)


def generate_combinations(
    selections: Sequence[Any],
    catalog: Mapping[int, Any],
    existing: Iterable[Any] = (),
    *,
    max_combinations: Optional[int] = None,
    key_of: Callable[[Any], str] = variant_identity,
) -> list[Combination]:
    """
    Full, deduplicated combination list for a product.

    Outer-to-inner order follows `selections`; within an attribute, catalog
    order. Every combination whose key matches an existing variant carries
    that variant in `existing` so the caller keeps its id, SKU, price, stock,
    images and is_active.
    """
    value_lists = resolve_selection(selections, catalog)
    if not value_lists:
        raise NoValidAttributesError()

    total = count_combinations(value_lists)
    if max_combinations is not None and total > max_combinations:
        raise BadRequestError(
            f"Selection produces {total} combinations (max {max_combinations})",
            "TOO_MANY_COMBINATIONS",
            extra={"combinations": total, "max": max_combinations},
        )

    by_key: dict[str, Any] = {}
    for v in existing:
        by_key.setdefault(key_of(v), v)

    out: list[Combination] = []
    for combo in cartesian(value_lists):
        key = identity_key((rv.attribute_id, rv.value_id) for rv in combo)
        out.append(Combination(values=combo, key=key, existing=by_key.get(key)))
    return out


def total_stock(variants: Iterable[Any]) -> int:
    total = 0
    for v in variants:
        stock = v.get("stock") if isinstance(v, Mapping) else getattr(v, "stock", 0)
        total += int(stock or 0)
    return total


__all__ = [
    "Combination",
    "ResolvedValue",
    "Selection",
    "attribute_pairs",
    "cartesian",
    "count_combinations",
    "generate_combinations",
    "identity_key",
    "resolve_selection",
    "total_stock",
    "variant_identity",
]
