"""
Pydantic models for processed sections, property definitions and
extraction candidates.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExtractionType(str, Enum):
    """Extraction type vocabulary derived from a property's data type."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    URL = "url"
    BOOLEAN = "boolean"


class CandidateSource(str, Enum):
    """Where a candidate value came from."""
    MODEL = "model"
    DETERMINISTIC = "deterministic"


# =============================================================================
# Section Models
# =============================================================================

class SectionStats(BaseModel):
    """Size statistics for a processed section."""
    model_config = ConfigDict(frozen=True)

    original_length: int
    processed_length: int
    sentence_count: int


class Section(BaseModel):
    """A named, cleaned block of document text with a bounded sentence list."""
    model_config = ConfigDict(frozen=True)

    name: str
    content: str                     # Cleaned, length-capped text
    sentences: tuple[str, ...] = ()  # Ordered, capped count
    hash: str = ""                   # Rolling hash of the first 100 chars
    stats: SectionStats


# =============================================================================
# Property Definition
# =============================================================================

class Property(BaseModel):
    """
    A field the caller wants values for.

    Templates name the declared type ``dataType`` or ``type``; both are
    accepted as aliases of ``data_type``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = ""
    label: str = ""
    description: Optional[str] = None
    data_type: str = Field(default="text", alias="dataType")

    @model_validator(mode="before")
    @classmethod
    def _accept_type_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and "type" in data:
            if "dataType" not in data and "data_type" not in data:
                data = dict(data)
                data["dataType"] = data.pop("type")
        return data

    @model_validator(mode="after")
    def _require_identity(self) -> "Property":
        if not self.id and not self.label:
            raise ValueError("Property requires an id or a label")
        return self

    @property
    def key(self) -> str:
        """Output key for this property (label, falling back to id)."""
        return self.label or self.id

    @property
    def owner_id(self) -> str:
        """Identifier recorded as sentence owner in the sentence pool."""
        return self.id or self.label

    @classmethod
    def coerce(cls, value: Any) -> "Property":
        """Build a Property from a Property instance or a mapping."""
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


# =============================================================================
# Extraction Candidates
# =============================================================================

class Candidate(BaseModel):
    """An extracted value with its evidence, before validation."""

    value: Any
    section: str
    sentence: str
    confidence: float
    source: Optional[CandidateSource] = None
    conflict: bool = False


class ValidatedResult(Candidate):
    """A candidate that passed validation, value coerced to its type."""

    expected_type: ExtractionType = ExtractionType.TEXT
    validated: bool = True
