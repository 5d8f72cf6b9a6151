"""
Property extraction pipeline.

This package extracts structured property values from segmented document
text:
- Cleaning and sentence segmentation of sections
- Prompted extraction with a language-model completer
- Tolerant parsing of model replies
- Pattern-based fallback extraction
- Validation with cross-property evidence exclusivity
"""

from .config import ExtractionConfig, PipelineSettings, load_config
from .errors import ParseError, PropertyPipelineError, ProviderUnavailableError
from .parse.models import Candidate, ExtractionType, Property, ValidatedResult
from .extract.orchestrator import ExtractionOrchestrator, extract_properties

__all__ = [
    "ExtractionConfig",
    "PipelineSettings",
    "load_config",
    "PropertyPipelineError",
    "ProviderUnavailableError",
    "ParseError",
    "Candidate",
    "ExtractionType",
    "Property",
    "ValidatedResult",
    "ExtractionOrchestrator",
    "extract_properties",
]
