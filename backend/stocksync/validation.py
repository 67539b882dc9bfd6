from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from .time_utils import coerce_date, to_utc_z


SKU_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Maximum money value: 99,999,999.99
MAX_MONEY = Decimal("99999999.99")


@dataclass(frozen=True)
class FieldSpec:
    """
    One writable document field.

    kind is one of: text, int, bool, money, date, list.
    """
    name: str
    kind: str = "text"
    required: bool = False
    max_length: int | None = None
    choices: tuple[str, ...] | None = None
    default: Any = None


@dataclass(frozen=True)
class EntitySchema:
    """
    Central policy for one entity:
    - fields: what clients are allowed to set (everything else is rejected)
    - required fields must be present and non-empty on create
    """
    entity: str
    fields: tuple[FieldSpec, ...]

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


def parse_non_negative_int(value: Any, label: str) -> int:
    """Strict integer parsing; floats, decimals and scientific notation are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{label} must be an integer, not a decimal")
        parsed = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{label} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{label} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{label} must be an integer (no decimals)")
        try:
            parsed = int(stripped)
        except ValueError:
            raise ValidationError(f"{label} must be an integer")
    else:
        raise ValidationError(f"{label} must be an integer")
    if parsed < 0:
        raise ValidationError(f"{label} must be a number >= 0")
    return parsed


def parse_money(value: Any, label: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{label} must be a number")
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        raise ValidationError(f"{label} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a number")
    if amount < 0:
        raise ValidationError(f"{label} must be a number >= 0")
    if amount > MAX_MONEY:
        raise ValidationError(f"{label} exceeds maximum allowed ({MAX_MONEY})")
    return amount


def parse_bool(value: Any, label: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().upper()
        if text == "TRUE":
            return True
        if text in ("FALSE", ""):
            return False
    raise ValidationError(f"{label} must be TRUE or FALSE")


def _coerce_value(spec: FieldSpec, value: Any) -> Any:
    if value is None:
        return None

    if spec.kind == "int":
        return parse_non_negative_int(value, spec.name)

    if spec.kind == "bool":
        return parse_bool(value, spec.name)

    if spec.kind == "money":
        # Stored as a float with 2dp (JSON documents carry no Decimal type)
        return float(parse_money(value, spec.name).quantize(Decimal("0.01")))

    if spec.kind == "date":
        try:
            return to_utc_z(coerce_date(value))
        except ValueError:
            raise ValidationError(f"{spec.name} must be an ISO-8601 date")

    if spec.kind == "list":
        if not isinstance(value, list):
            raise ValidationError(f"{spec.name} must be a list")
        return value

    text = str(value).strip()
    if spec.max_length is not None and len(text) > spec.max_length:
        raise ValidationError(f"{spec.name} exceeds max length {spec.max_length}")
    if spec.choices is not None and text and text not in spec.choices:
        raise ValidationError(f"{spec.name} must be one of: {', '.join(spec.choices)}")
    return text


def validate_payload(*, schema: EntitySchema, payload: Any, partial: bool) -> dict:
    """
    Validates + normalizes an incoming document body against an EntitySchema.

    partial=False: create semantics (required fields enforced, defaults applied)
    partial=True: patch semantics (validate only provided keys)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for key in payload.keys():
        if key == "id":
            continue
        if schema.field(key) is None:
            raise ValidationError(f"Field not allowed: {key}")

    cleaned: dict[str, Any] = {}
    for spec in schema.fields:
        if spec.name not in payload:
            if not partial:
                if spec.required:
                    raise ValidationError(f"{spec.name} is required.")
                if spec.default is not None:
                    cleaned[spec.name] = spec.default
            continue
        value = _coerce_value(spec, payload[spec.name])
        if spec.required and (value is None or value == ""):
            raise ValidationError(f"{spec.name} is required.")
        cleaned[spec.name] = value
    return cleaned


def validate_sku(sku: str) -> str:
    sku = (sku or "").strip()
    if not sku:
        raise ValidationError("SKU is required.")
    if not SKU_PATTERN.match(sku):
        raise ValidationError(f"SKU '{sku}' contains invalid characters.")
    return sku
