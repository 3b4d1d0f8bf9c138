"""
Merge engine for categorized GeoJSON files.

Pipeline: ingest -> order -> transform -> serialize.

- ``ingest`` filters a dropped batch to GeoJSON files, checks that at least one
  file name carries a category, parses every file and tags each feature of a
  categorized file with ``properties.data_type``.
- ``reorder`` moves one entry of the working set to a new position.
- ``merge_working_set`` concatenates the features of every entry in order,
  hoists ``properties.id`` to the feature and renames truncated property keys.
- ``serialize_document`` renders the result as indented UTF-8 JSON.

All functions are pure with respect to their inputs: a new ``WorkingSet`` is
returned and the caller decides whether to commit it.
"""
import json
import logging
import math
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.config import GEOJSON_SUFFIXES
from models.merge import Category, InputFile, ParsedDocument, WorkingSet
from services.merge.key_mapping import KeyMapping, remap_properties

logger = logging.getLogger(__name__)

# Checked in this order, the first hit wins
CATEGORY_PATTERNS: List[Tuple[str, Category]] = [
    ("_floor_", Category.FLOOR),
    ("_sector_", Category.SECTOR),
    ("_poi_", Category.POI),
]

CATEGORY_REQUIRED_MESSAGE = "At least one file name must contain _floor_, _sector_ or _poi_."


class MergeError(Exception):
    """Base class for errors raised by the merge engine."""


class CategoryValidationError(MergeError):
    def __init__(self, message: str = CATEGORY_REQUIRED_MESSAGE):
        super().__init__(message)


class DocumentParseError(MergeError):
    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not parse '{filename}': {reason}")


class ReorderError(MergeError):
    pass


class NonStandardConstantError(ValueError):
    pass


def infer_category(name: str) -> Optional[Category]:
    lowered = name.lower()
    for pattern, category in CATEGORY_PATTERNS:
        if pattern in lowered:
            return category
    return None


def is_geojson_filename(name: str, case_sensitive: bool = True) -> bool:
    if not case_sensitive:
        name = name.lower()
    return name.endswith(GEOJSON_SUFFIXES)


def _reject_constant(name: str):
    # NaN, Infinity and -Infinity are not JSON
    raise NonStandardConstantError(f"non-standard JSON constant {name}")


def _parse_finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise NonStandardConstantError(f"number {literal} is out of range")
    return value


def parse_document(input_file: InputFile) -> ParsedDocument:
    """
    Parse a raw buffer into a ParsedDocument.

    Only the ``features`` array is retained; a document without one
    contributes no features.

    Raises:
        DocumentParseError: If the buffer is not UTF-8 JSON or not a JSON object
    """
    try:
        # utf-8-sig tolerates a leading BOM
        text = input_file.raw_content.decode("utf-8-sig")
        data = json.loads(
            text, parse_constant=_reject_constant, parse_float=_parse_finite_float
        )
    except UnicodeDecodeError as e:
        raise DocumentParseError(input_file.name, f"not valid UTF-8 ({e.reason})") from e
    except (json.JSONDecodeError, NonStandardConstantError) as e:
        raise DocumentParseError(input_file.name, str(e)) from e

    if not isinstance(data, dict):
        raise DocumentParseError(input_file.name, "expected a GeoJSON object")

    features = data.get("features")
    if not isinstance(features, list):
        features = []

    return ParsedDocument(
        entry_id=uuid.uuid4().hex,
        name=input_file.name,
        category=infer_category(input_file.name),
        content={"type": "FeatureCollection", "features": features},
    )


def _tag_features(features: List[Any], category: Category) -> List[Any]:
    tagged = []
    for feature in features:
        if not isinstance(feature, dict):
            tagged.append(feature)
            continue
        properties = feature.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        tagged.append({**feature, "properties": {**properties, "data_type": category.value}})
    return tagged


def ingest(
    working_set: WorkingSet,
    files: Sequence[InputFile],
    case_sensitive: bool = True,
) -> Tuple[WorkingSet, List[ParsedDocument]]:
    """
    Ingest a dropped batch of files.

    The batch is all-or-nothing: it is rejected before any parsing when no
    GeoJSON file name carries a category, and a single unparsable file aborts
    it. Files without a category are accepted alongside categorized ones but
    get no ``data_type``.

    Args:
        working_set: Current working set (left untouched)
        files: Batch in drop order
        case_sensitive: Whether the .json/.geojson suffix test is case-sensitive

    Returns:
        Tuple of the new working set and the documents appended to it

    Raises:
        CategoryValidationError: If no file in the batch has a category
        DocumentParseError: If any file in the batch is not valid JSON
    """
    candidates = []
    for input_file in files:
        if is_geojson_filename(input_file.name, case_sensitive=case_sensitive):
            candidates.append(input_file)
        else:
            logger.debug(f"Skipping non-GeoJSON file: {input_file.name}")

    if not any(infer_category(f.name) is not None for f in candidates):
        logger.warning(
            f"Rejected batch of {len(files)} file(s): no file name carries a category"
        )
        raise CategoryValidationError()

    accepted = []
    for input_file in candidates:
        document = parse_document(input_file)
        if document.category is not None:
            document.content["features"] = _tag_features(document.features, document.category)
        accepted.append(document)

    logger.info(
        f"Accepted {len(accepted)} file(s): "
        + ", ".join(f"{d.name} ({d.category.value if d.category else '-'})" for d in accepted)
    )
    return WorkingSet(entries=working_set.entries + accepted), accepted


def reorder(
    working_set: WorkingSet, source_index: int, destination_index: Optional[int]
) -> WorkingSet:
    """
    Move the entry at ``source_index`` to ``destination_index``.

    Entries in between shift by one slot. A missing destination (drag dropped
    outside the list) returns the working set unchanged.

    Raises:
        ReorderError: If an index is outside the working set
    """
    if destination_index is None:
        return working_set

    size = len(working_set.entries)
    for label, index in (("source", source_index), ("destination", destination_index)):
        if not 0 <= index < size:
            raise ReorderError(f"{label} index {index} out of range for {size} file(s)")

    entries = list(working_set.entries)
    moved = entries.pop(source_index)
    entries.insert(destination_index, moved)
    logger.info(f"Moved '{moved.name}' from position {source_index} to {destination_index}")
    return WorkingSet(entries=entries)


def transform_feature(feature: Dict[str, Any], key_mapping: KeyMapping) -> Dict[str, Any]:
    """Hoist ``properties.id`` and rename property keys of a single feature.

    Keys already present on the feature, a top-level ``id`` included, are
    applied after the hoisted id and win over it. ``geometry`` and any other
    member pass through by reference.
    """
    hoisted: Dict[str, Any] = {}
    rest = dict(feature)
    properties = rest.get("properties")

    if isinstance(properties, dict):
        if "id" in properties:
            hoisted["id"] = properties["id"]
            properties = {k: v for k, v in properties.items() if k != "id"}
        rest["properties"] = remap_properties(properties, key_mapping)

    return {**hoisted, **rest}


def merge_working_set(
    working_set: WorkingSet, key_mapping: KeyMapping
) -> Optional[Dict[str, Any]]:
    """
    Build the merged FeatureCollection from the working set.

    Returns:
        The merged document, or None when the working set is empty

    Raises:
        CategoryValidationError: If no entry in the working set has a category
    """
    if not working_set.entries:
        return None

    if not working_set.has_categorized_entry():
        raise CategoryValidationError()

    features = []
    for entry in working_set.entries:
        for feature in entry.features:
            if isinstance(feature, dict):
                features.append(transform_feature(feature, key_mapping))
            else:
                features.append(feature)

    logger.info(f"Merged {len(features)} features from {len(working_set)} file(s)")
    return {"type": "FeatureCollection", "features": features}


def serialize_document(document: Dict[str, Any]) -> bytes:
    # Lone surrogates from \uXXXX escapes are written back as escapes
    text = json.dumps(document, indent=2, ensure_ascii=False, allow_nan=False)
    return text.encode("utf-8", "backslashreplace")
