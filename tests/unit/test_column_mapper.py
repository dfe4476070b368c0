"""
Unit tests for the column mapper.
"""

import pytest

from exceptions import MappingConflictError, MappingFrozenError, UnknownColumnError
from models.item_fields import SKIP, TargetFieldKey, template_headers
from services.column_mapper import alias_matches, auto_detect_mapping


class TestAutoDetect:
    """Greedy alias detection."""

    def test_common_headers(self):
        # Arrange
        headers = ["Item Name", "SKU", "Qty"]

        # Act
        mapping = auto_detect_mapping(headers)

        # Assert
        assert mapping.to_dict() == {
            "Item Name": "name",
            "SKU": "item_code",
            "Qty": "current_quantity",
        }

    def test_header_normalized_before_matching(self):
        mapping = auto_detect_mapping(["  ITEM NAME  "])

        assert mapping.target_of("  ITEM NAME  ") == TargetFieldKey.NAME

    def test_unmatched_header_skipped(self):
        mapping = auto_detect_mapping(["Item Name", "Zzz"])

        assert mapping.target_of("Zzz") == SKIP

    def test_claimed_field_passed_over(self):
        # "shelf" is a storage alias too, but storage is already taken
        mapping = auto_detect_mapping(["Location", "Shelf"])

        assert mapping.target_of("Location") == TargetFieldKey.STORAGE_LOCATION
        assert mapping.target_of("Shelf") == TargetFieldKey.SHELF_LOCATION

    def test_first_header_wins_a_field(self):
        forward = auto_detect_mapping(["Name", "Equipment Name"])
        backward = auto_detect_mapping(["Equipment Name", "Name"])

        assert forward.target_of("Name") == TargetFieldKey.NAME
        assert forward.target_of("Equipment Name") == SKIP
        assert backward.target_of("Equipment Name") == TargetFieldKey.NAME
        assert backward.target_of("Name") == SKIP

    def test_deterministic(self):
        headers = ["Equipment", "Code", "Serial", "Room", "Price", "Voltage", "Remarks"]

        assert auto_detect_mapping(headers) == auto_detect_mapping(headers)

    def test_never_maps_a_field_twice(self):
        headers = ["Name", "Item Name", "Product Name", "Qty", "Quantity", "Stock"]

        mapping = auto_detect_mapping(headers)
        targets = [field for _, field in mapping.mapped_items()]

        assert len(targets) == len(set(targets))

    def test_template_headers_map_every_field(self):
        mapping = auto_detect_mapping(template_headers())

        assert {field for _, field in mapping.mapped_items()} == set(TargetFieldKey)

    def test_alias_substring_match(self):
        assert alias_matches("supplier email", ("supplier",))
        assert not alias_matches("colour", ("color",))


class TestColumnMapping:
    """Manual edits."""

    @pytest.fixture
    def mapping(self):
        return auto_detect_mapping(["Item Name", "SKU", "Notes"])

    def test_assign_taken_field_raises(self, mapping):
        with pytest.raises(MappingConflictError):
            mapping.assign("Notes", TargetFieldKey.NAME)

    def test_assign_unknown_header_raises(self, mapping):
        with pytest.raises(UnknownColumnError):
            mapping.assign("Colour", TargetFieldKey.NOTES)

    def test_reassign_same_header_allowed(self, mapping):
        mapping.assign("Item Name", TargetFieldKey.NAME)

        assert mapping.header_for(TargetFieldKey.NAME) == "Item Name"

    def test_replace_from_strings(self, mapping):
        mapping.replace({"Item Name": "name", "SKU": "serial_number", "Notes": "colour"})

        assert mapping.to_dict() == {
            "Item Name": "name",
            "SKU": "serial_number",
            "Notes": "skip",
        }

    def test_replace_is_atomic_on_conflict(self, mapping):
        before = mapping.to_dict()

        with pytest.raises(MappingConflictError):
            mapping.replace({"Item Name": "name", "SKU": "name"})

        assert mapping.to_dict() == before

    def test_frozen_mapping_rejects_edits(self, mapping):
        mapping.freeze()

        with pytest.raises(MappingFrozenError):
            mapping.assign("Notes", SKIP)
        with pytest.raises(MappingFrozenError):
            mapping.replace({})

    def test_copy_is_unfrozen_and_equal(self, mapping):
        mapping.freeze()

        clone = mapping.copy()

        assert clone == mapping
        assert not clone.frozen
