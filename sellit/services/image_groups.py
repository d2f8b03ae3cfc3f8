# sellit/services/image_groups.py
"""
Image groups: variants grouped by their projection onto attributes flagged
`requires_image`, so one photo set (e.g. "Red") covers Red/S, Red/M, Red/L.

Also:
- distribute uploaded variant images to groups by an ordered {group_key: file_count} mapping;
- ImageGroupDraft, the client-side editing state (persisted URLs vs pending uploads).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sellit.core.exceptions import BadRequestError


def _attrs_of(variant: Any) -> list[Mapping[str, Any]]:
    attrs = variant.get("attributes") if isinstance(variant, Mapping) else variant.attributes
    return list(attrs or [])


def _get(variant: Any, name: str, default: Any = None) -> Any:
    if isinstance(variant, Mapping):
        return variant.get(name, default)
    return getattr(variant, name, default)


def project(attributes: Iterable[Mapping[str, Any]], image_attribute_ids: Iterable[int]) -> list[Mapping[str, Any]]:
    """Variant attributes restricted to image-required attributes (variant order kept)."""
    wanted = {int(a) for a in image_attribute_ids}
    return [a for a in attributes if int(a["attribute_id"]) in wanted]


def image_group_key(attributes: Iterable[Mapping[str, Any]], image_attribute_ids: Iterable[int]) -> str:
    pairs = sorted(
        (int(a["attribute_id"]), int(a["value_id"])) for a in project(attributes, image_attribute_ids)
    )
    return "|".join(f"{a}-{v}" for a, v in pairs)


@dataclass
class ImageGroup:
    key: str
    label: str
    attributes: list[dict[str, Any]]
    images: list[str] = field(default_factory=list)
    total_stock: int = 0
    variant_ids: list[int] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        # в наличии, но без фото
        return self.total_stock > 0 and not self.images

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "attributes": self.attributes,
            "images": self.images,
            "total_stock": self.total_stock,
            "variant_ids": self.variant_ids,
            "needs_attention": self.needs_attention,
        }


def build_image_groups(variants: Iterable[Any], image_attribute_ids: Iterable[int]) -> list[ImageGroup]:
    """
    Groups in first-seen order. The first variant of a group seeds the label
    and the images; later variants of the group only add their stock.
    """
    ids = [int(a) for a in image_attribute_ids]
    if not ids:
        return []

    groups: dict[str, ImageGroup] = {}
    for variant in variants:
        projected = project(_attrs_of(variant), ids)
        if not projected:
            continue
        key = image_group_key(projected, ids)
        group = groups.get(key)
        if group is None:
            group = ImageGroup(
                key=key,
                label=" / ".join(str(a.get("value", "")) for a in projected),
                attributes=[
                    {
                        "attribute_id": int(a["attribute_id"]),
                        "attribute_name": a.get("attribute_name"),
                        "value_id": int(a["value_id"]),
                        "value": a.get("value"),
                        "color_hex": a.get("color_hex"),
                    }
                    for a in projected
                ],
                images=list(_get(variant, "images") or []),
            )
            groups[key] = group
        group.total_stock += int(_get(variant, "stock", 0) or 0)
        vid = _get(variant, "id")
        if vid is not None:
            group.variant_ids.append(int(vid))
    return list(groups.values())


def distribute_uploads(mapping: Mapping[str, int], urls: Sequence[str]) -> dict[str, list[str]]:
    """
    Slice uploaded URLs to group keys following the mapping's insertion order.

    {"1-10": 2, "1-11": 1} with [a, b, c] -> {"1-10": [a, b], "1-11": [c]}
    """
    expected = 0
    for key, count in mapping.items():
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise BadRequestError(
                f"Invalid file count for image group '{key}'", "VARIANT_IMAGE_MAPPING_MISMATCH"
            )
        expected += count
    if expected != len(urls):
        raise BadRequestError(
            f"variant_image_mapping expects {expected} files, got {len(urls)}",
            "VARIANT_IMAGE_MAPPING_MISMATCH",
        )

    out: dict[str, list[str]] = {}
    pos = 0
    for key, count in mapping.items():
        out[key] = list(urls[pos : pos + count])
        pos += count
    return out


def apply_group_images(
    variants: Iterable[Any],
    group_images: Mapping[str, Sequence[str]],
    image_attribute_ids: Iterable[int],
) -> set[str]:
    """
    Append each group's URLs to every variant whose projection key equals the group key.
    Returns the keys that matched at least one variant.
    """
    ids = [int(a) for a in image_attribute_ids]
    matched: set[str] = set()
    for variant in variants:
        key = image_group_key(_attrs_of(variant), ids)
        urls = group_images.get(key)
        if not key or not urls:
            continue
        current = list(_get(variant, "images") or [])
        new_images = current + [u for u in urls if u not in current]
        if isinstance(variant, dict):
            variant["images"] = new_images
        else:
            variant.images = new_images
        matched.add(key)
    return matched


# ---------------------------------------------------------------------------
# Client-side draft state
# ---------------------------------------------------------------------------
@dataclass
class _DraftSlot:
    label: str
    persisted: list[str] = field(default_factory=list)
    pending: list[Any] = field(default_factory=list)


class ImageGroupDraft:
    """
    Editing state for group images before submit.

    Pending items are file-like handles (anything with `.close()`); removing one
    closes it so the underlying buffer is released.
    """

    def __init__(self) -> None:
        self._slots: dict[str, _DraftSlot] = {}

    @classmethod
    def from_groups(cls, groups: Iterable[ImageGroup]) -> "ImageGroupDraft":
        draft = cls()
        for g in groups:
            draft._slots[g.key] = _DraftSlot(label=g.label, persisted=list(g.images))
        return draft

    def _slot(self, key: str) -> _DraftSlot:
        try:
            return self._slots[key]
        except KeyError:
            raise KeyError(f"Unknown image group: {key}") from None

    def keys(self) -> list[str]:
        return list(self._slots)

    def persisted(self, key: str) -> list[str]:
        return list(self._slot(key).persisted)

    def pending(self, key: str) -> list[Any]:
        return list(self._slot(key).pending)

    def add_pending(self, key: str, handle: Any) -> None:
        self._slot(key).pending.append(handle)

    def remove_pending(self, key: str, index: int) -> None:
        handle = self._slot(key).pending.pop(index)
        close = getattr(handle, "close", None)
        if callable(close):
            close()

    def remove_persisted(self, key: str, url: str) -> bool:
        slot = self._slot(key)
        if url in slot.persisted:
            slot.persisted.remove(url)
            return True
        return False

    def upload_mapping(self) -> dict[str, int]:
        return {k: len(s.pending) for k, s in self._slots.items() if s.pending}

    def pending_files(self) -> list[Any]:
        out: list[Any] = []
        for s in self._slots.values():
            out.extend(s.pending)
        return out

    def close(self) -> None:
        for s in self._slots.values():
            while s.pending:
                handle = s.pending.pop()
                close = getattr(handle, "close", None)
                if callable(close):
                    close()


def image_attribute_ids_for(product_attribute_ids: Iterable[int], catalog: Mapping[int, Any]) -> list[int]:
    """Selected attribute ids whose catalog entry requires images, in selection order."""
    out: list[int] = []
    for aid in product_attribute_ids:
        attr = catalog.get(int(aid))
        if attr is not None and getattr(attr, "requires_image", False):
            out.append(int(aid))
    return out


__all__ = [
    "ImageGroup",
    "ImageGroupDraft",
    "apply_group_images",
    "build_image_groups",
    "distribute_uploads",
    "image_attribute_ids_for",
    "image_group_key",
    "project",
]
