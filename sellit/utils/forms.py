# sellit/utils/forms.py
"""
Strict parsing of JSON-encoded multipart form fields.

Product create/update travel as multipart (files + structured data), so
`product_attributes`, `variants`, `variant_image_mapping`, `existing_images`
arrive as JSON strings. A field that is not valid JSON, or does not match its
schema, fails the request with 422 INVALID_FORM_FIELD.
"""

from __future__ import annotations

import json
from typing import Any, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from sellit.core.exceptions import SellitValidationError

T = TypeVar("T")


def _errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]


def parse_json_field(raw: Optional[str], field: str, tp: type[T] | Any) -> Optional[T]:
    """
    None/empty -> None (field not sent). Otherwise JSON-decode and validate against `tp`.
    """
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise SellitValidationError(
            f"Field '{field}' is not valid JSON",
            "INVALID_FORM_FIELD",
            extra={"field": field, "error": str(e)},
        ) from e
    try:
        return TypeAdapter(tp).validate_python(data)
    except ValidationError as e:
        raise SellitValidationError(
            f"Field '{field}' has invalid structure",
            "INVALID_FORM_FIELD",
            extra={"field": field, "errors": _errors(e)},
        ) from e


__all__ = ["parse_json_field"]
