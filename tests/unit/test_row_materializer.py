"""
Unit tests for the row materializer.
"""

from datetime import date, datetime
import pytest

from models.bulk_import import EnrichedValue, EnrichmentSource, ImageCandidate, RowEnrichment
from models.item_fields import TargetFieldKey
from services.column_mapper import auto_detect_mapping
from services.row_materializer import (
    coerce_value,
    materialize_row,
    parse_boolean,
    parse_date,
    parse_leading_float,
    parse_leading_int,
)
from tests.factories import RowFactory


def enrichment_of(**values) -> RowEnrichment:
    return RowEnrichment(enriched={
        TargetFieldKey(key): EnrichedValue(value=value, source=EnrichmentSource.HEURISTIC)
        for key, value in values.items()
    })


class TestMaterializeRow:
    """Canonical record assembly."""

    def test_basic_row(self):
        # Arrange
        headers = ["Item Name", "SKU", "Qty"]
        row = RowFactory.create(headers, ("Beaker 500ml", "BKR-500", "25"))

        # Act
        record = materialize_row(row, auto_detect_mapping(headers), "dept-1")

        # Assert
        assert record == {
            "department_id": "dept-1",
            "name": "Beaker 500ml",
            "item_code": "BKR-500",
            "current_quantity": 25,
            "status": "available",
            "condition": "good",
            "unit": "pcs",
            "is_borrowable": True,
        }

    def test_created_by_written_when_known(self):
        headers = ["Item Name"]
        row = RowFactory.create(headers, ("Beaker",))

        record = materialize_row(row, auto_detect_mapping(headers), "dept-1", created_by="user-7")

        assert record["created_by"] == "user-7"
        assert "created_by" not in materialize_row(row, auto_detect_mapping(headers), "dept-1")

    def test_skipped_headers_ignored(self):
        headers = ["Item Name", "Zzz"]
        row = RowFactory.create(headers, ("Beaker", "ignore me"))

        record = materialize_row(row, auto_detect_mapping(headers), "dept-1")

        assert "ignore me" not in record.values()
        assert "Zzz" not in record

    def test_enrichment_fills_blank_cells_only(self):
        headers = ["Item Name", "Item Code", "Description"]
        row = RowFactory.create(headers, ("Beaker", "OWN-1", None))
        enrichment = enrichment_of(item_code="BEA-001", description="Glass beaker.")

        record = materialize_row(row, auto_detect_mapping(headers), "dept-1", enrichment=enrichment)

        assert record["item_code"] == "OWN-1"
        assert record["description"] == "Glass beaker."

    def test_enriched_quantity_used_when_column_unmapped(self):
        headers = ["Item Name"]
        row = RowFactory.create(headers, ("Pipette Tips",))

        record = materialize_row(
            row, auto_detect_mapping(headers), "dept-1",
            enrichment=enrichment_of(current_quantity=100),
        )

        assert record["current_quantity"] == 100

    def test_blank_mapped_quantity_falls_back_before_enrichment(self):
        headers = ["Item Name", "Qty"]
        row = RowFactory.create(headers, ("Pipette Tips", None))

        record = materialize_row(
            row, auto_detect_mapping(headers), "dept-1",
            enrichment=enrichment_of(current_quantity=100),
        )

        assert record["current_quantity"] == 1

    def test_enrichment_fills_unparseable_enum(self):
        headers = ["Item Name", "Safety Level"]
        row = RowFactory.create(headers, ("Nitric Acid", "extreme"))

        record = materialize_row(
            row, auto_detect_mapping(headers), "dept-1",
            enrichment=enrichment_of(safety_level="high"),
        )

        assert record["safety_level"] == "high"

    def test_selected_images(self):
        headers = ["Item Name"]
        row = RowFactory.create(headers, ("Beaker",))
        images = [
            ImageCandidate(url="https://img.example.org/a.jpg"),
            ImageCandidate(url="https://img.example.org/b.jpg"),
            ImageCandidate(url="https://img.example.org/c.jpg"),
        ]

        record = materialize_row(row, auto_detect_mapping(headers), "dept-1", selected_images=images)

        assert record["image_url"] == "https://img.example.org/a.jpg"
        assert record["sub_images"] == ["https://img.example.org/b.jpg", "https://img.example.org/c.jpg"]

    def test_single_image_has_no_sub_images(self):
        headers = ["Item Name"]
        row = RowFactory.create(headers, ("Beaker",))

        record = materialize_row(
            row, auto_detect_mapping(headers), "dept-1",
            selected_images=[ImageCandidate(url="https://img.example.org/a.jpg")],
        )

        assert record["image_url"] == "https://img.example.org/a.jpg"
        assert "sub_images" not in record

    def test_defaults_do_not_override_values(self):
        headers = ["Item Name", "Status", "Condition", "Unit", "Borrowable"]
        row = RowFactory.create(headers, ("Beaker", "Damaged", "poor", "box", "no"))

        record = materialize_row(row, auto_detect_mapping(headers), "dept-1")

        assert record["status"] == "damaged"
        assert record["condition"] == "poor"
        assert record["unit"] == "box"
        assert record["is_borrowable"] is False

    def test_same_inputs_same_record(self):
        headers = ["Item Name", "Qty", "Price", "Purchase Date"]
        row = RowFactory.create(headers, ("Beaker", "3 pcs", "12.50", "2024-03-01"))
        mapping = auto_detect_mapping(headers)
        before = dict(row.cells)

        first = materialize_row(row, mapping, "dept-1")
        second = materialize_row(row, mapping, "dept-1")

        assert first == second
        assert row.cells == before


class TestCoercion:
    """Per-kind coercion."""

    @pytest.mark.parametrize("value,expected", [
        (25, 25),
        ("25", 25),
        ("25 pcs", 25),
        (7.9, 7),
        ("-2", -2),
        ("abc", None),
        (None, None),
        (True, None),
    ])
    def test_parse_leading_int(self, value, expected):
        assert parse_leading_int(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("12.50 USD", 12.5),
        (350, 350.0),
        (".5", 0.5),
        ("", None),
        ("free", None),
    ])
    def test_parse_leading_float(self, value, expected):
        assert parse_leading_float(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("Yes", True),
        ("1", True),
        (True, True),
        ("no", False),
        ("0", False),
        ("maybe", None),
        (None, None),
    ])
    def test_parse_boolean(self, value, expected):
        assert parse_boolean(value) is expected

    def test_parse_date(self):
        assert parse_date(datetime(2024, 1, 15, 9, 30)) == "2024-01-15"
        assert parse_date(date(2023, 12, 31)) == "2023-12-31"
        assert parse_date("2024-03-01") == "2024-03-01"
        assert parse_date("not a date") is None
        assert parse_date(None) is None

    def test_integer_fallbacks(self):
        assert coerce_value(TargetFieldKey.CURRENT_QUANTITY, "lots") == 1
        assert coerce_value(TargetFieldKey.REORDER_THRESHOLD, None) == 1
        assert coerce_value(TargetFieldKey.MAINTENANCE_INTERVAL_DAYS, "n/a") is None

    def test_enums_case_insensitive(self):
        assert coerce_value(TargetFieldKey.STATUS, " Under_Maintenance ") == "under_maintenance"
        assert coerce_value(TargetFieldKey.STATUS, "lost") is None
        assert coerce_value(TargetFieldKey.SAFETY_LEVEL, "HIGH") == "high"

    def test_text_trimmed_and_blank_is_none(self):
        assert coerce_value(TargetFieldKey.NOTES, "  keep dry  ") == "keep dry"
        assert coerce_value(TargetFieldKey.NOTES, "   ") is None
        assert coerce_value(TargetFieldKey.ITEM_CODE, 1001.0) == "1001"

    def test_price(self):
        assert coerce_value(TargetFieldKey.PURCHASE_PRICE, "99.90") == 99.9
        assert coerce_value(TargetFieldKey.PURCHASE_PRICE, None) is None
