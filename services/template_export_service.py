"""
Template export: the downloadable import workbook.

Header row is the catalog labels in catalog order, followed by two
example rows, so a filled-in template maps fully on upload.
"""

from io import BytesIO
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
import structlog

from models.item_fields import TARGET_FIELDS, TargetFieldKey as K, template_headers

logger = structlog.get_logger(__name__)

TEMPLATE_FILENAME = "Inventory_Import_Template.xlsx"
TEMPLATE_SHEET = "Import Template"
COLUMN_WIDTH = 20

EXAMPLE_ROWS: tuple[dict[K, str], ...] = (
    {
        K.NAME: "Digital Oscilloscope",
        K.DESCRIPTION: "4-channel 200MHz scope",
        K.ITEM_CODE: "OSC-001",
        K.SERIAL_NUMBER: "SN-2024-001",
        K.ASSET_TAG: "AT-1001",
        K.BARCODE: "9781234567890",
        K.ITEM_TYPE: "Equipment",
        K.MODEL_NUMBER: "TBS2000B",
        K.BRAND: "Tektronix",
        K.UNIT: "pcs",
        K.CURRENT_QUANTITY: "5",
        K.REORDER_THRESHOLD: "2",
        K.STATUS: "available",
        K.CONDITION: "good",
        K.IS_BORROWABLE: "true",
        K.STORAGE_LOCATION: "Room 205 Cabinet A",
        K.LAB_LOCATION: "Electronics Lab",
        K.SHELF_LOCATION: "Shelf B3",
        K.PURCHASE_PRICE: "45000",
        K.PURCHASE_DATE: "2024-01-15",
        K.SUPPLIER_NAME: "SciEquip Ltd",
        K.SUPPLIER_CONTACT: "contact@sciequip.com",
        K.INVOICE_REFERENCE: "INV-2024-0042",
        K.WARRANTY_UNTIL: "2027-01-15",
        K.SAFETY_LEVEL: "medium",
        K.POWER_RATING: "100W",
        K.VOLTAGE: "220V",
        K.MAINTENANCE_INTERVAL_DAYS: "180",
        K.NOTES: "Calibrated quarterly",
    },
    {
        K.NAME: "Beaker 500ml",
        K.DESCRIPTION: "Borosilicate glass beaker",
        K.ITEM_CODE: "BKR-500",
        K.ITEM_TYPE: "Glassware",
        K.BRAND: "Borosil",
        K.UNIT: "pcs",
        K.CURRENT_QUANTITY: "25",
        K.REORDER_THRESHOLD: "10",
        K.STATUS: "available",
        K.CONDITION: "new",
        K.IS_BORROWABLE: "true",
        K.STORAGE_LOCATION: "Lab Store Room 1",
        K.LAB_LOCATION: "Chemistry Lab",
        K.SHELF_LOCATION: "Shelf A1",
        K.PURCHASE_PRICE: "350",
        K.PURCHASE_DATE: "2024-06-01",
        K.SUPPLIER_NAME: "Lab Supplies Inc",
        K.SAFETY_LEVEL: "low",
        K.HAZARD_TYPE: "corrosive",
        K.EXPIRY_DATE: "2026-12-31",
    },
)


class TemplateExportService:
    """Builds the import template workbook."""

    def generate_template(self) -> BytesIO:
        """
        Generate the import template.

        Returns:
            BytesIO containing the .xlsx file
        """
        wb = Workbook()
        ws = wb.active
        ws.title = TEMPLATE_SHEET

        header_font = Font(bold=True)
        header_fill = PatternFill(start_color="E0E8FF", end_color="E0E8FF", fill_type="solid")

        headers = template_headers()
        ws.append(headers)
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill

        for example in EXAMPLE_ROWS:
            ws.append([example.get(f.key, "") for f in TARGET_FIELDS])

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTH
        ws.freeze_panes = "A2"

        logger.info("import_template_generated", columns=len(headers), examples=len(EXAMPLE_ROWS))

        # Save to BytesIO
        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


# Singleton instance
_template_export_service: Optional[TemplateExportService] = None


def get_template_export_service() -> TemplateExportService:
    """Get or create TemplateExportService instance."""
    global _template_export_service
    if _template_export_service is None:
        _template_export_service = TemplateExportService()
    return _template_export_service
