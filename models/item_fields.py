"""
Target schema catalog for inventory imports.

Declares every item field a spreadsheet column can be mapped to, the
coercion kind of each field, and the alias table used for auto-mapping.
Declaration order matters: the column mapper walks fields in this order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TargetFieldKey(str, Enum):
    """Mappable item fields (catalog order)."""
    # Core
    NAME = "name"
    DESCRIPTION = "description"
    ITEM_CODE = "item_code"
    SERIAL_NUMBER = "serial_number"
    ASSET_TAG = "asset_tag"
    BARCODE = "barcode"
    ITEM_TYPE = "item_type"
    MODEL_NUMBER = "model_number"
    BRAND = "brand"
    UNIT = "unit"
    # Quantity & status
    CURRENT_QUANTITY = "current_quantity"
    REORDER_THRESHOLD = "reorder_threshold"
    STATUS = "status"
    CONDITION = "condition"
    IS_BORROWABLE = "is_borrowable"
    # Location
    STORAGE_LOCATION = "storage_location"
    LAB_LOCATION = "lab_location"
    SHELF_LOCATION = "shelf_location"
    # Procurement
    PURCHASE_PRICE = "purchase_price"
    PURCHASE_DATE = "purchase_date"
    SUPPLIER_NAME = "supplier_name"
    SUPPLIER_CONTACT = "supplier_contact"
    INVOICE_REFERENCE = "invoice_reference"
    WARRANTY_UNTIL = "warranty_until"
    # Safety
    SAFETY_LEVEL = "safety_level"
    HAZARD_TYPE = "hazard_type"
    # Electrical
    POWER_RATING = "power_rating"
    VOLTAGE = "voltage"
    # Maintenance
    MAINTENANCE_INTERVAL_DAYS = "maintenance_interval_days"
    EXPIRY_DATE = "expiry_date"
    # Other
    NOTES = "notes"


class FieldKind(str, Enum):
    """How a raw cell is coerced for a field."""
    TEXT = "text"
    INTEGER = "integer"
    PRICE = "price"
    BOOLEAN = "boolean"
    STATUS = "status"
    SAFETY_LEVEL = "safety_level"
    DATE = "date"


class FieldGroup(str, Enum):
    """Display grouping of target fields."""
    CORE = "Core"
    QUANTITY = "Quantity"
    LOCATION = "Location"
    PROCUREMENT = "Procurement"
    SAFETY = "Safety"
    ELECTRICAL = "Electrical"
    MAINTENANCE = "Maintenance"
    OTHER = "Other"


@dataclass(frozen=True)
class TargetField:
    """One destination attribute in the item schema."""
    key: TargetFieldKey
    label: str
    group: FieldGroup
    kind: FieldKind = FieldKind.TEXT
    required: bool = False


# Sentinel for headers that are not imported
SKIP = "skip"

# Image columns written by the materializer (never mapped from a spreadsheet)
IMAGE_URL_FIELD = "image_url"
SUB_IMAGES_FIELD = "sub_images"


TARGET_FIELDS: tuple[TargetField, ...] = (
    TargetField(TargetFieldKey.NAME, "Item Name", FieldGroup.CORE, required=True),
    TargetField(TargetFieldKey.DESCRIPTION, "Description", FieldGroup.CORE),
    TargetField(TargetFieldKey.ITEM_CODE, "Item Code", FieldGroup.CORE),
    TargetField(TargetFieldKey.SERIAL_NUMBER, "Serial Number", FieldGroup.CORE),
    TargetField(TargetFieldKey.ASSET_TAG, "Asset Tag", FieldGroup.CORE),
    TargetField(TargetFieldKey.BARCODE, "Barcode", FieldGroup.CORE),
    TargetField(TargetFieldKey.ITEM_TYPE, "Item Type", FieldGroup.CORE),
    TargetField(TargetFieldKey.MODEL_NUMBER, "Model Number", FieldGroup.CORE),
    TargetField(TargetFieldKey.BRAND, "Brand", FieldGroup.CORE),
    TargetField(TargetFieldKey.UNIT, "Unit", FieldGroup.CORE),
    TargetField(TargetFieldKey.CURRENT_QUANTITY, "Quantity", FieldGroup.QUANTITY, FieldKind.INTEGER),
    TargetField(TargetFieldKey.REORDER_THRESHOLD, "Reorder Threshold", FieldGroup.QUANTITY, FieldKind.INTEGER),
    TargetField(TargetFieldKey.STATUS, "Status", FieldGroup.QUANTITY, FieldKind.STATUS),
    TargetField(TargetFieldKey.CONDITION, "Condition", FieldGroup.QUANTITY),
    TargetField(TargetFieldKey.IS_BORROWABLE, "Is Borrowable", FieldGroup.QUANTITY, FieldKind.BOOLEAN),
    TargetField(TargetFieldKey.STORAGE_LOCATION, "Storage Location", FieldGroup.LOCATION),
    TargetField(TargetFieldKey.LAB_LOCATION, "Lab Location", FieldGroup.LOCATION),
    TargetField(TargetFieldKey.SHELF_LOCATION, "Shelf Location", FieldGroup.LOCATION),
    TargetField(TargetFieldKey.PURCHASE_PRICE, "Purchase Price", FieldGroup.PROCUREMENT, FieldKind.PRICE),
    TargetField(TargetFieldKey.PURCHASE_DATE, "Purchase Date", FieldGroup.PROCUREMENT, FieldKind.DATE),
    TargetField(TargetFieldKey.SUPPLIER_NAME, "Supplier Name", FieldGroup.PROCUREMENT),
    TargetField(TargetFieldKey.SUPPLIER_CONTACT, "Supplier Contact", FieldGroup.PROCUREMENT),
    TargetField(TargetFieldKey.INVOICE_REFERENCE, "Invoice Reference", FieldGroup.PROCUREMENT),
    TargetField(TargetFieldKey.WARRANTY_UNTIL, "Warranty Until", FieldGroup.PROCUREMENT, FieldKind.DATE),
    TargetField(TargetFieldKey.SAFETY_LEVEL, "Safety Level", FieldGroup.SAFETY, FieldKind.SAFETY_LEVEL),
    TargetField(TargetFieldKey.HAZARD_TYPE, "Hazard Type", FieldGroup.SAFETY),
    TargetField(TargetFieldKey.POWER_RATING, "Power Rating", FieldGroup.ELECTRICAL),
    TargetField(TargetFieldKey.VOLTAGE, "Voltage", FieldGroup.ELECTRICAL),
    TargetField(
        TargetFieldKey.MAINTENANCE_INTERVAL_DAYS,
        "Maintenance Interval (days)",
        FieldGroup.MAINTENANCE,
        FieldKind.INTEGER,
    ),
    TargetField(TargetFieldKey.EXPIRY_DATE, "Expiry Date", FieldGroup.MAINTENANCE, FieldKind.DATE),
    TargetField(TargetFieldKey.NOTES, "Notes", FieldGroup.OTHER),
)

_FIELDS_BY_KEY: dict[TargetFieldKey, TargetField] = {f.key: f for f in TARGET_FIELDS}


# Lowercase aliases per field, in catalog order.
FIELD_ALIASES: tuple[tuple[TargetFieldKey, tuple[str, ...]], ...] = (
    (TargetFieldKey.NAME, (
        "item name", "product name", "name", "title", "item", "equipment", "equipment name",
    )),
    (TargetFieldKey.DESCRIPTION, ("description", "desc", "details")),
    (TargetFieldKey.ITEM_CODE, ("item code", "code", "sku", "product code", "item_code")),
    (TargetFieldKey.SERIAL_NUMBER, ("serial", "serial number", "serial_number", "sn", "s/n")),
    (TargetFieldKey.ASSET_TAG, ("asset tag", "asset_tag", "asset id", "tag")),
    (TargetFieldKey.BARCODE, ("barcode", "bar code", "upc", "ean")),
    (TargetFieldKey.ITEM_TYPE, ("item type", "item_type", "type", "category")),
    (TargetFieldKey.MODEL_NUMBER, (
        "model", "model number", "model_number", "catalog number", "catalog_number",
        "cat no", "part number", "part_number",
    )),
    (TargetFieldKey.BRAND, ("brand", "manufacturer", "make")),
    (TargetFieldKey.UNIT, ("unit", "uom", "unit of measure")),
    (TargetFieldKey.CURRENT_QUANTITY, ("quantity", "qty", "count", "amount", "current_quantity", "stock")),
    (TargetFieldKey.REORDER_THRESHOLD, (
        "reorder", "reorder threshold", "reorder_threshold", "min stock", "minimum",
    )),
    (TargetFieldKey.STATUS, ("status", "state")),
    (TargetFieldKey.CONDITION, ("condition",)),
    (TargetFieldKey.IS_BORROWABLE, ("borrowable", "is_borrowable", "can borrow")),
    (TargetFieldKey.STORAGE_LOCATION, ("location", "storage", "storage_location", "room", "shelf")),
    (TargetFieldKey.LAB_LOCATION, ("lab", "lab location", "lab_location", "laboratory")),
    (TargetFieldKey.SHELF_LOCATION, ("shelf", "shelf_location", "rack", "bin")),
    (TargetFieldKey.PURCHASE_PRICE, ("price", "cost", "purchase price", "purchase_price", "value")),
    (TargetFieldKey.PURCHASE_DATE, ("purchase date", "purchase_date", "date purchased", "acquired")),
    (TargetFieldKey.SUPPLIER_NAME, ("supplier", "vendor", "supplier_name")),
    (TargetFieldKey.SUPPLIER_CONTACT, (
        "supplier contact", "supplier_contact", "vendor contact", "vendor email",
    )),
    (TargetFieldKey.INVOICE_REFERENCE, ("invoice", "invoice_reference", "invoice number", "po number")),
    (TargetFieldKey.WARRANTY_UNTIL, ("warranty", "warranty_until", "warranty end", "warranty date")),
    (TargetFieldKey.SAFETY_LEVEL, ("safety", "safety level", "safety_level", "hazard level")),
    (TargetFieldKey.HAZARD_TYPE, ("hazard", "hazard type", "hazard_type")),
    (TargetFieldKey.POWER_RATING, ("power", "wattage", "power_rating")),
    (TargetFieldKey.VOLTAGE, ("voltage", "volts", "v")),
    (TargetFieldKey.MAINTENANCE_INTERVAL_DAYS, (
        "maintenance interval", "maintenance_interval_days", "service interval",
    )),
    (TargetFieldKey.EXPIRY_DATE, ("expiry", "expiry_date", "expiration", "expires")),
    (TargetFieldKey.NOTES, ("notes", "remarks", "comments", "memo")),
)


# Allowed enum values
VALID_STATUSES: tuple[str, ...] = (
    "available",
    "borrowed",
    "under_maintenance",
    "damaged",
    "archived",
)
VALID_SAFETY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "hazardous")

TRUE_VALUES = frozenset({"true", "yes", "1"})
FALSE_VALUES = frozenset({"false", "no", "0"})

# Defaults applied after coercion and enrichment
RECORD_DEFAULTS: tuple[tuple[str, object], ...] = (
    (TargetFieldKey.STATUS.value, "available"),
    (TargetFieldKey.CONDITION.value, "good"),
    (TargetFieldKey.CURRENT_QUANTITY.value, 1),
    (TargetFieldKey.IS_BORROWABLE.value, True),
    (TargetFieldKey.UNIT.value, "pcs"),
)

# Fallbacks when an integer cell does not parse
INTEGER_FALLBACKS: dict[TargetFieldKey, Optional[int]] = {
    TargetFieldKey.CURRENT_QUANTITY: 1,
    TargetFieldKey.REORDER_THRESHOLD: 1,
    TargetFieldKey.MAINTENANCE_INTERVAL_DAYS: None,
}


def get_field(key: TargetFieldKey) -> TargetField:
    """Catalog entry for a field key."""
    return _FIELDS_BY_KEY[key]


def parse_field_key(value: str) -> Optional[TargetFieldKey]:
    """Field key for a raw string, or None for 'skip' and unknown names."""
    try:
        return TargetFieldKey(value)
    except ValueError:
        return None


def required_fields() -> list[TargetField]:
    """Fields that must be present on every row."""
    return [f for f in TARGET_FIELDS if f.required]


def template_headers() -> list[str]:
    """Header row of the downloadable template (catalog labels, in order)."""
    return [f.label for f in TARGET_FIELDS]
