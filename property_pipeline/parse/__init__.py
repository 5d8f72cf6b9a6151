"""
Section processing package.

This package turns raw section text into cleaned, segmented sections and
tracks which sentences have been claimed as evidence.
"""

from .models import (
    # Enums
    ExtractionType,
    CandidateSource,
    # Section models
    SectionStats,
    Section,
    # Property definition
    Property,
    # Candidate models
    Candidate,
    ValidatedResult,
)

from .text_processor import (
    TextProcessor,
    rolling_hash,
)

from .sentence_pool import SentencePool

__all__ = [
    # Enums
    "ExtractionType",
    "CandidateSource",
    # Section models
    "SectionStats",
    "Section",
    # Property definition
    "Property",
    # Candidate models
    "Candidate",
    "ValidatedResult",
    # Processing
    "TextProcessor",
    "rolling_hash",
    "SentencePool",
]
