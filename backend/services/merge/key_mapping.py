"""
Property key renames applied while merging.

Upstream exports truncate attribute names to ten characters,
e.g. ``created_da`` or ``created_da2``. Each table entry maps such a
truncated prefix back to its canonical name.
"""
import logging
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

KeyMapping = List[Tuple[str, str]]

BASE_KEY_MAPPINGS: KeyMapping = [
    ("created_da", "created_date"),
    ("category_c", "category_code"),
    ("primary_ca", "primary_category"),
    ("secondary_", "secondary_category"),
    ("tertiary_c", "tertiary_category"),
    ("road_addre", "road_address"),
    ("opening_ye", "opening_year"),
    ("business_h", "business_hours"),
]

EXTENDED_KEY_MAPPINGS: KeyMapping = BASE_KEY_MAPPINGS + [
    ("store_numb", "store_number"),
]

KEY_MAPPING_VARIANTS: Dict[str, KeyMapping] = {
    "base": BASE_KEY_MAPPINGS,
    "extended": EXTENDED_KEY_MAPPINGS,
}

DEFAULT_VARIANT = "extended"


def get_key_mapping(variant: Optional[str] = None) -> KeyMapping:
    """Return the rename table for ``variant``.

    Unknown variants fall back to the default table with a warning.
    """
    if not variant:
        return KEY_MAPPING_VARIANTS[DEFAULT_VARIANT]
    mapping = KEY_MAPPING_VARIANTS.get(variant)
    if mapping is None:
        logger.warning(
            f"Unknown key mapping variant '{variant}', using '{DEFAULT_VARIANT}'"
        )
        return KEY_MAPPING_VARIANTS[DEFAULT_VARIANT]
    return mapping


def remap_key(key: str, key_mapping: KeyMapping) -> str:
    # first matching prefix wins, in table order
    for prefix, canonical in key_mapping:
        if key.startswith(prefix):
            return canonical
    return key


def remap_properties(properties: Dict, key_mapping: KeyMapping) -> Dict:
    """Rename every key of ``properties`` through ``key_mapping``.

    Two keys that collapse onto the same canonical name keep the value of the
    one iterated last.
    """
    remapped = {}
    for key, value in properties.items():
        remapped[remap_key(key, key_mapping)] = value
    return remapped
