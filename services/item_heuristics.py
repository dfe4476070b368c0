"""
Local keyword heuristics for item enrichment.

Always available, so enrichment still produces an item type, a safety
level and an item code when the lookup service is down.
"""

from typing import Optional


# Category -> keywords. First category (in this order) with a hit wins.
ITEM_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Equipment", (
        "oscilloscope", "multimeter", "generator", "analyzer", "scope",
        "spectrometer", "microscope", "centrifuge", "autoclave", "incubator",
        "printer", "scanner", "projector", "monitor", "computer", "laptop",
        "server", "router", "switch", "camera", "drone", "robot",
        "power supply", "function generator", "signal generator",
    )),
    ("Glassware", (
        "beaker", "flask", "test tube", "pipette", "burette", "funnel",
        "petri dish", "graduated cylinder", "volumetric", "erlenmeyer",
        "condenser", "distillation", "round bottom", "watch glass",
    )),
    ("Chemical", (
        "acid", "base", "solvent", "reagent", "solution", "compound",
        "ethanol", "methanol", "acetone", "chloroform", "sulfuric",
        "hydrochloric", "nitric", "sodium hydroxide", "potassium",
        "indicator", "buffer", "catalyst",
    )),
    ("Measuring Instrument", (
        "caliper", "micrometer", "gauge", "thermometer", "hygrometer",
        "barometer", "manometer", "scale", "balance", "weighing",
        "flow meter", "ph meter", "conductivity meter", "lux meter",
    )),
    ("Safety Equipment", (
        "goggles", "gloves", "lab coat", "face shield", "respirator",
        "fire extinguisher", "first aid", "safety shower", "eye wash",
        "fume hood", "biosafety cabinet", "ppe",
    )),
    ("Tool", (
        "wrench", "screwdriver", "plier", "hammer", "drill", "saw", "cutter",
        "crimper", "soldering", "wire stripper", "hex key", "socket",
        "ratchet", "clamp", "vise",
    )),
    ("Consumable", (
        "filter paper", "litmus", "tape", "adhesive", "wire", "cable",
        "resistor", "capacitor", "led", "transistor", "diode", "fuse",
        "battery", "solder", "flux", "thermal paste", "lubricant",
    )),
    ("Furniture", (
        "table", "chair", "desk", "cabinet", "shelf", "rack", "stool",
        "workbench", "trolley", "locker", "whiteboard",
    )),
)

# Checked most severe first; "low" is the fallback
SAFETY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("hazardous", (
        "radioactive", "biohazard", "carcinogen", "toxic gas", "explosive",
        "cyanide", "mercury",
    )),
    ("high", (
        "acid", "corrosive", "flammable", "oxidizer", "toxic", "concentrated",
        "fuming", "pyrophoric", "reactive", "hazardous", "dangerous",
    )),
    ("medium", (
        "laser", "high voltage", "uv", "compressed gas", "hot plate",
        "centrifuge", "autoclave", "solvent", "irritant", "sharp",
        "electrical", "heavy",
    )),
)

DEFAULT_SAFETY_LEVEL = "low"


def _search_text(name: str, description: Optional[str]) -> str:
    return f"{name or ''} {description or ''}".lower()


def infer_item_type(name: str, description: Optional[str] = None) -> Optional[str]:
    """
    Guess an item category from its name and description.

    Returns:
        Category name, or None when no keyword matches
    """
    text = _search_text(name, description)
    for category, keywords in ITEM_TYPE_KEYWORDS:
        if any(kw in text for kw in keywords):
            return category
    return None


def infer_safety_level(name: str, description: Optional[str] = None) -> str:
    """Guess a safety level; never None (defaults to 'low')."""
    text = _search_text(name, description)
    for level, keywords in SAFETY_KEYWORDS:
        if any(kw in text for kw in keywords):
            return level
    return DEFAULT_SAFETY_LEVEL


def generate_item_code(name: str, index: int) -> str:
    """
    Build a placeholder item code like "DOI-001".

    Prefix: first letter of the first two words plus the second letter of
    the first word, or the first three characters of a single-word name.
    Sequence: row index + 1, zero-padded to three digits.

    Examples:
        generate_item_code("Digital Oscilloscope", 0) -> "DOI-001"
        generate_item_code("Beaker", 11) -> "BEA-012"
    """
    words = name.split()
    if len(words) >= 2:
        first = words[0]
        prefix = first[0] + words[1][0] + (first[1] if len(first) > 1 else "")
    else:
        prefix = name.strip()[:3]
    return f"{prefix.upper()}-{index + 1:03d}"
