# Overview: Bulk product import; validates a tabular upload, stages new lookups, commits in one batch.

"""
Bulk Product Import

validate_product_import() is a pure function over a header row plus data
rows (already parsed from the upload). It never touches a store.

FILE-LEVEL ALL-OR-NOTHING: any error anywhere marks the result not ready;
ProductImporter.commit() refuses such a result. A ready result is written
as one batch: new lookup values (array-union merged into the lookups
metadata document) plus every product row, keyed by SKU.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import UniquenessConflict, ValidationError
from ..time_utils import now_z
from ..validation import SKU_PATTERN
from .catalog_service import LOOKUPS_DOC_ID, LookupCatalog, ProductCatalog, normalize_lookup_value
from .connectivity import ConnectivityContext
from .document_store import DocumentStore, array_union
from .import_schemas import SCHEMAS

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    rows: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    new_lookups: dict[str, list[str]] = field(default_factory=lambda: {"brands": [], "categories": []})

    @property
    def ready(self) -> bool:
        return not self.errors and bool(self.rows)

    def to_dict(self) -> dict:
        return {
            "rows": self.rows,
            "errors": self.errors,
            "newLookups": self.new_lookups,
            "ready": self.ready,
            "rowCount": len(self.rows),
            "errorCount": len(self.errors),
        }


def _row_is_empty(raw_row: Iterable[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in raw_row)


def validate_product_import(
    header_row: list[Any],
    data_rows: list[list[Any]],
    existing_skus: Iterable[str],
    existing_lookups: Mapping[str, Iterable[str]],
) -> ImportResult:
    """
    Validate product rows from an upload.

    Row numbers are 1-based with the header as Row 1. SKUs are compared
    case-insensitively against existing_skus and against earlier rows of
    the same file. Brand and Category are trimmed and capitalised; a value
    matching an existing lookup (ignoring case) takes the existing casing,
    any other value is staged once in new_lookups.
    """
    schema = SCHEMAS["products"]
    result = ImportResult()

    missing = schema.missing_headers(header_row or [])
    if missing:
        result.errors.append(f"Missing required headers: {', '.join(missing)}")
        return result

    known_skus = {str(s).strip().lower() for s in existing_skus if s}
    seen_in_file: dict[str, int] = {}

    canonical: dict[str, dict[str, str]] = {}
    for list_name in schema.lookup_lists.values():
        canonical[list_name] = {
            str(v).strip().lower(): str(v) for v in (existing_lookups.get(list_name) or [])
        }
    staged: dict[str, dict[str, str]] = {list_name: {} for list_name in schema.lookup_lists.values()}

    for index, raw_row in enumerate(data_rows or []):
        row_number = index + 2
        raw_row = list(raw_row or [])
        if _row_is_empty(raw_row):
            continue

        normalized = schema.normalize_row(header_row, raw_row)
        parsed, row_errors = schema.validate_row(row_number, normalized)

        sku = parsed.get("sku")
        if sku:
            if not SKU_PATTERN.match(sku):
                row_errors.append(
                    f'Row {row_number}, SKU "{sku}": Spaces and special characters are not allowed '
                    "(use only letters, numbers, '-' or '_')."
                )
            elif sku.lower() in known_skus:
                row_errors.append(f'Row {row_number}, SKU "{sku}": SKU already exists in the database.')
            elif sku.lower() in seen_in_file:
                row_errors.append(
                    f'Row {row_number}, SKU "{sku}": Duplicate SKU found within the file '
                    f"(first seen in Row {seen_in_file[sku.lower()]})."
                )
            else:
                seen_in_file[sku.lower()] = row_number

        if row_errors:
            result.errors.extend(row_errors)
            continue

        for column_field, list_name in schema.lookup_lists.items():
            cleaned = normalize_lookup_value(parsed[column_field])
            key = cleaned.lower()
            if key in canonical[list_name]:
                parsed[column_field] = canonical[list_name][key]
            else:
                staged[list_name].setdefault(key, cleaned)
                parsed[column_field] = staged[list_name][key]

        result.rows.append(parsed)

    result.new_lookups = {name: list(values.values()) for name, values in staged.items()}
    if result.errors:
        logger.info("Product import validation found %d errors in %d rows", len(result.errors), len(data_rows or []))
    return result


def read_workbook(stream) -> tuple[list[Any], list[list[Any]]]:
    """Header row and data rows of the first sheet of an .xlsx upload."""
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile) as exc:
        logger.warning("Unreadable workbook upload: %s", exc)
        raise ValidationError("Could not read the uploaded workbook.") from exc
    try:
        sheet = wb.worksheets[0]
        rows = [list(r) for r in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()
    if not rows:
        raise ValidationError("File is empty.")
    header = [str(h).strip() if h is not None else "" for h in rows[0]]
    return header, rows[1:]


def read_csv_rows(stream) -> tuple[list[Any], list[list[Any]]]:
    text = stream.read()
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV upload must be UTF-8 encoded.") from exc
    rows = list(csv.reader(io.StringIO(text)))
    if not rows:
        raise ValidationError("File is empty.")
    header = [h.strip() for h in rows[0]]
    return header, rows[1:]


class ProductImporter:
    """Validates uploads against the loaded catalog and commits ready results."""

    def __init__(
        self,
        *,
        connectivity: ConnectivityContext,
        store: DocumentStore,
        products: ProductCatalog,
        lookups: LookupCatalog,
    ):
        self.connectivity = connectivity
        self.store = store
        self.products = products
        self.lookups = lookups

    def validate(self, header_row: list[Any], data_rows: list[list[Any]]) -> ImportResult:
        return validate_product_import(
            header_row,
            data_rows,
            self.products.existing_skus(),
            self.lookups.lookups,
        )

    def commit(self, result: ImportResult, user_id: str | None = None) -> dict:
        self.connectivity.require_online("import products")
        if result.errors:
            raise ValidationError(
                f"Import has {len(result.errors)} error(s); nothing was committed.",
                details=result.errors,
            )
        if not result.rows:
            raise ValidationError("No product rows to import.")

        known = {s.lower() for s in self.products.existing_skus()}
        clashes = [row["sku"] for row in result.rows if row["sku"].lower() in known]
        if clashes:
            raise UniquenessConflict(
                f"SKU(s) already exist: {', '.join(clashes)}. Re-validate the file.",
                details=clashes,
            )

        user_id = user_id or self.connectivity.user_id
        batch = self.store.batch(self.connectivity.tenant_id)

        lookup_updates = {
            name: array_union(*values) for name, values in result.new_lookups.items() if values
        }
        if lookup_updates:
            batch.set(self.lookups.collection, LOOKUPS_DOC_ID, lookup_updates, merge=True)

        stamp = now_z()
        for row in result.rows:
            body = dict(row)
            body.update({"createdAt": stamp, "updatedAt": stamp, "createdBy": user_id})
            batch.set(self.products.collection, row["sku"], body)

        batch.commit()
        summary = {
            "imported": len(result.rows),
            "newLookups": {name: list(values) for name, values in result.new_lookups.items() if values},
        }
        logger.info("Imported %d products (%s)", summary["imported"], summary["newLookups"] or "no new lookups")
        return summary
