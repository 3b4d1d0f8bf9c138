from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class Category(str, Enum):
    FLOOR = "floor"
    SECTOR = "sector"
    POI = "poi"


@dataclass(frozen=True)
class InputFile:
    """A named raw buffer as delivered by the drop/pick surface."""

    name: str
    raw_content: bytes


@dataclass
class ParsedDocument:
    entry_id: str  # synthetic key, stable across reorders
    name: str
    category: Optional[Category]
    content: Dict[str, Any]  # {"type": "FeatureCollection", "features": [...]}

    @property
    def features(self) -> List[Dict[str, Any]]:
        return self.content.get("features", [])


@dataclass
class WorkingSet:
    """The user's ordered collection of ingested files awaiting merge."""

    entries: List[ParsedDocument] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def has_categorized_entry(self) -> bool:
        return any(entry.category is not None for entry in self.entries)


# API schemas


class FileEntry(BaseModel):
    id: str
    name: str
    category: Optional[Category] = None
    feature_count: int

    class Config:
        # Allow Enum values to be output as raw values
        use_enum_values = True


class WorkingSetResponse(BaseModel):
    files: List[FileEntry]


class ReorderRequest(BaseModel):
    source_index: int
    # None mirrors a drag that was dropped outside the list
    destination_index: Optional[int] = None


class KeyMappingEntry(BaseModel):
    prefix: str
    canonical: str


class KeyMappingResponse(BaseModel):
    variant: str
    mappings: List[KeyMappingEntry]


def to_file_entry(document: ParsedDocument) -> FileEntry:
    return FileEntry(
        id=document.entry_id,
        name=document.name,
        category=document.category,
        feature_count=len(document.features),
    )
