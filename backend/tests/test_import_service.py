"""
Bulk product import tests.

Validation is file-level all-or-nothing: one bad row blocks the whole
import and nothing is written.
"""

import io

import pytest
from openpyxl import Workbook

from stocksync.errors import OfflineRejection, UniquenessConflict, ValidationError
from stocksync.services.import_service import (
    ImportResult,
    read_csv_rows,
    read_workbook,
    validate_product_import,
)

HEADER = ["SKU", "Model", "Brand", "Category", "Description", "ReorderPoint", "isSerialized"]


def validate(rows, *, header=HEADER, skus=(), lookups=None):
    return validate_product_import(header, rows, list(skus), lookups or {"brands": [], "categories": []})


class TestValidation:
    def test_valid_rows_are_parsed(self):
        result = validate([
            ["PH-1", "Phone One", "acme", "phones", "Flagship", 5, "TRUE"],
            ["CB-1", "Cable", "Acme", "Accessories", None, None, None],
        ])
        assert result.ready
        assert result.errors == []
        assert result.rows[0] == {
            "sku": "PH-1", "model": "Phone One", "brand": "Acme", "category": "Phones",
            "description": "Flagship", "reorderPoint": 5, "isSerialized": True,
        }
        assert result.rows[1]["reorderPoint"] == 0
        assert result.rows[1]["isSerialized"] is False
        assert result.new_lookups == {"brands": ["Acme"], "categories": ["Phones", "Accessories"]}

    def test_missing_required_headers(self):
        result = validate([["PH-1", "M"]], header=["SKU", "Model", "Description"])
        assert result.errors == ["Missing required headers: Brand, Category"]
        assert not result.ready

    def test_header_order_does_not_matter(self):
        header = ["Category", "Brand", "Model", "SKU"]
        result = validate([["Phones", "Acme", "M1", "A-1"]], header=header)
        assert result.ready
        assert result.rows[0]["sku"] == "A-1"

    def test_row_errors_use_sheet_row_numbers(self):
        result = validate([
            ["PH-1", "Phone", "Acme", "Phones", "", 1, "TRUE"],
            ["PH-2", "", "Acme", "Phones", "", "-3", "maybe"],
        ])
        assert not result.ready
        assert result.errors == [
            'Row 3, Column "Model": Value is required.',
            'Row 3, Column "ReorderPoint": Value "-3" must be a non-negative whole number.',
            'Row 3, Column "isSerialized": Value must be TRUE or FALSE.',
        ]
        assert [row["sku"] for row in result.rows] == ["PH-1"]

    def test_blank_rows_skipped(self):
        result = validate([
            ["PH-1", "Phone", "Acme", "Phones"],
            [None, None, "  ", None],
            ["PH-2", "Phone 2", "Acme", "Phones"],
        ])
        assert result.ready
        assert len(result.rows) == 2

    @pytest.mark.parametrize("value", [2.5, "1e3", "three", True])
    def test_reorder_point_must_be_whole(self, value):
        result = validate([["PH-1", "Phone", "Acme", "Phones", "", value, "FALSE"]])
        assert len(result.errors) == 1
        assert "non-negative whole number" in result.errors[0]

    def test_whole_float_reorder_point_accepted(self):
        result = validate([["PH-1", "Phone", "Acme", "Phones", "", 4.0, False]])
        assert result.rows[0]["reorderPoint"] == 4


class TestSkuRules:
    def test_invalid_characters(self):
        result = validate([["PH 1", "Phone", "Acme", "Phones"]])
        assert result.errors == [
            'Row 2, SKU "PH 1": Spaces and special characters are not allowed '
            "(use only letters, numbers, '-' or '_')."
        ]

    def test_existing_sku_case_insensitive(self):
        result = validate([["ph-1", "Phone", "Acme", "Phones"]], skus=["PH-1"])
        assert result.errors == ['Row 2, SKU "ph-1": SKU already exists in the database.']

    def test_duplicate_within_file(self):
        result = validate([
            ["PH-1", "Phone", "Acme", "Phones"],
            ["CB-1", "Cable", "Acme", "Phones"],
            ["Ph-1", "Phone", "Acme", "Phones"],
        ])
        assert result.errors == [
            'Row 4, SKU "Ph-1": Duplicate SKU found within the file (first seen in Row 2).'
        ]

    def test_numeric_sku_cell_is_text(self):
        result = validate([[12345.0, "Phone", "Acme", "Phones"]])
        assert result.rows[0]["sku"] == "12345"


class TestLookupStaging:
    def test_existing_lookup_casing_reused(self):
        result = validate(
            [["PH-1", "Phone", "ACME", "phones"]],
            lookups={"brands": ["AcMe"], "categories": ["Phones"]},
        )
        assert result.rows[0]["brand"] == "AcMe"
        assert result.rows[0]["category"] == "Phones"
        assert result.new_lookups == {"brands": [], "categories": []}

    def test_new_value_staged_once(self):
        result = validate([
            ["PH-1", "Phone", "zeta", "Phones"],
            ["PH-2", "Phone", "Zeta ", "Phones"],
        ], lookups={"brands": [], "categories": ["Phones"]})
        assert result.new_lookups["brands"] == ["Zeta"]
        assert {row["brand"] for row in result.rows} == {"Zeta"}


class TestReaders:
    def test_read_workbook_first_sheet(self):
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER)
        ws.append(["PH-1", "Phone", "Acme", "Phones", None, 3, True])
        buf = io.BytesIO()
        wb.save(buf)
        buf.seek(0)

        header, rows = read_workbook(buf)
        assert header == HEADER
        assert rows[0][:4] == ["PH-1", "Phone", "Acme", "Phones"]
        result = validate(rows, header=header)
        assert result.rows[0]["isSerialized"] is True

    def test_read_workbook_rejects_garbage(self):
        with pytest.raises(ValidationError):
            read_workbook(io.BytesIO(b"not a zip file"))

    def test_read_csv(self):
        data = "SKU,Model,Brand,Category\r\nPH-1,Phone,Acme,Phones\r\n".encode("utf-8-sig")
        header, rows = read_csv_rows(io.BytesIO(data))
        assert header == ["SKU", "Model", "Brand", "Category"]
        assert rows == [["PH-1", "Phone", "Acme", "Phones"]]

    def test_empty_csv(self):
        with pytest.raises(ValidationError):
            read_csv_rows(io.BytesIO(b""))


class TestCommit:
    def test_commit_writes_products_and_lookups(self, services):
        services.lookups.add_lookup_item("brands", "Acme")
        result = services.importer.validate(HEADER, [
            ["PH-1", "Phone", "acme", "phones", "", 2, "TRUE"],
            ["CB-1", "Cable", "Zeta", "Accessories", "", 0, "FALSE"],
        ])
        summary = services.importer.commit(result)

        assert summary == {"imported": 2, "newLookups": {"brands": ["Zeta"], "categories": ["Phones", "Accessories"]}}
        assert services.products.find("PH-1")["brand"] == "Acme"
        assert services.products.find("CB-1")["createdBy"] == "user-1"
        assert services.lookups.values("brands") == ["Acme", "Zeta"]
        assert services.lookups.values("categories") == ["Phones", "Accessories"]

    def test_any_error_blocks_whole_file(self, services):
        result = services.importer.validate(HEADER, [
            ["PH-1", "Phone", "Acme", "Phones"],
            ["PH 2", "Phone", "Acme", "Phones"],
        ])
        with pytest.raises(ValidationError) as exc:
            services.importer.commit(result)
        assert exc.value.details == result.errors
        assert services.products.items == []
        assert services.lookups.lookups == {}

    def test_existing_sku_detected_on_validate(self, services, make_product):
        make_product("PH-1")
        result = services.importer.validate(HEADER, [["ph-1", "Phone", "Acme", "Phones"]])
        assert not result.ready

    def test_sku_created_after_validation_blocks_commit(self, services, make_product):
        result = services.importer.validate(HEADER, [["PH-1", "Phone", "Acme", "Phones"]])
        make_product("PH-1")
        with pytest.raises(UniquenessConflict):
            services.importer.commit(result)
        assert len(services.products.items) == 1

    def test_empty_result_rejected(self, services):
        with pytest.raises(ValidationError):
            services.importer.commit(ImportResult())

    def test_offline_commit_rejected(self, services):
        result = services.importer.validate(HEADER, [["PH-1", "Phone", "Acme", "Phones"]])
        services.connectivity.go_offline()
        with pytest.raises(OfflineRejection):
            services.importer.commit(result)
