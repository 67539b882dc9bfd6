from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


def _to_count(value: Any) -> int | None:
    """Non-negative whole number, or None when the cell can't be read as one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if value.is_integer() and value >= 0:
            return int(value)
        return None
    text = str(value).strip()
    if not text.isdigit():
        return None
    return int(text)


def _to_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None


@dataclass(frozen=True)
class ImportColumn:
    header: str
    field: str
    mandatory: bool = False
    kind: str = "text"


class ProductsImportSchema:
    """Spreadsheet layout for product uploads (header row first)."""

    columns = (
        ImportColumn("SKU", "sku", mandatory=True),
        ImportColumn("Model", "model", mandatory=True),
        ImportColumn("Brand", "brand", mandatory=True, kind="lookup"),
        ImportColumn("Category", "category", mandatory=True, kind="lookup"),
        ImportColumn("Description", "description"),
        ImportColumn("ReorderPoint", "reorderPoint", kind="count"),
        ImportColumn("isSerialized", "isSerialized", kind="flag"),
    )

    # lookup list each lookup column feeds
    lookup_lists = {"brand": "brands", "category": "categories"}

    template_headers = [c.header for c in columns]

    @property
    def required_headers(self) -> list[str]:
        return [c.header for c in self.columns if c.mandatory]

    def missing_headers(self, header_row: list[Any]) -> list[str]:
        present = {str(h).strip() for h in header_row if h is not None}
        return [h for h in self.required_headers if h not in present]

    def normalize_row(self, header_row: list[Any], raw_row: list[Any]) -> dict[str, Any]:
        """Map raw cells onto column fields by header name; unknown columns are ignored."""
        by_header: dict[str, Any] = {}
        for index, header in enumerate(header_row):
            if header is None:
                continue
            name = str(header).strip()
            if name and name not in by_header:
                by_header[name] = raw_row[index] if index < len(raw_row) else None
        return {c.field: by_header.get(c.header) for c in self.columns}

    def validate_row(self, row_number: int, normalized: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        """Parse one normalized row. Returns (parsed product fields, row errors)."""
        errors: list[str] = []
        parsed: dict[str, Any] = {}

        for column in self.columns:
            value = normalized.get(column.field)
            if _is_blank(value):
                if column.mandatory:
                    errors.append(f'Row {row_number}, Column "{column.header}": Value is required.')
                    continue
                if column.kind == "count":
                    parsed[column.field] = 0
                elif column.kind == "flag":
                    parsed[column.field] = False
                else:
                    parsed[column.field] = ""
                continue

            if column.kind == "count":
                count = _to_count(value)
                if count is None:
                    errors.append(
                        f'Row {row_number}, Column "{column.header}": '
                        f'Value "{value}" must be a non-negative whole number.'
                    )
                    continue
                parsed[column.field] = count
            elif column.kind == "flag":
                flag = _to_flag(value)
                if flag is None:
                    errors.append(f'Row {row_number}, Column "{column.header}": Value must be TRUE or FALSE.')
                    continue
                parsed[column.field] = flag
            else:
                parsed[column.field] = _to_text(value) or ""

        return parsed, errors


SCHEMAS = {
    "products": ProductsImportSchema(),
}
