"""
Unit tests for the import template export.
"""

from openpyxl import load_workbook

from models.item_fields import TargetFieldKey, template_headers
from parsers.spreadsheet_parser import parse_spreadsheet
from services.column_mapper import auto_detect_mapping
from services.row_validator import validate_rows
from services.template_export_service import (
    TEMPLATE_SHEET,
    TemplateExportService,
    get_template_export_service,
)


class TestGenerateTemplate:
    """Workbook layout."""

    def test_header_row_and_examples(self):
        # Act
        output = TemplateExportService().generate_template()

        # Assert
        ws = load_workbook(output).active
        assert ws.title == TEMPLATE_SHEET
        assert [c.value for c in ws[1]] == template_headers()
        assert ws.max_row == 3
        assert ws["A2"].value == "Digital Oscilloscope"
        assert ws["A3"].value == "Beaker 500ml"
        assert ws["A1"].font.bold
        assert ws.freeze_panes == "A2"

    def test_template_maps_every_field_on_upload(self):
        output = TemplateExportService().generate_template()

        parsed = parse_spreadsheet(output, "Inventory_Import_Template.xlsx")
        mapping = auto_detect_mapping(parsed.headers)

        assert parsed.row_count == 2
        assert {field for _, field in mapping.mapped_items()} == set(TargetFieldKey)

    def test_example_rows_validate_cleanly(self):
        output = TemplateExportService().generate_template()

        parsed = parse_spreadsheet(output, "Inventory_Import_Template.xlsx")

        assert validate_rows(parsed.rows, auto_detect_mapping(parsed.headers)) == []

    def test_singleton(self):
        assert get_template_export_service() is get_template_export_service()
