"""
Deterministic (pattern-based) property extraction.

Works without any model call. Used as a fallback when the model returns
nothing usable and as a second, independent result set that is merged
with model results.

Pattern confidence reflects specificity:
- url patterns        0.9
- date patterns       0.8
- label-anchored number patterns 0.7
- generic/text patterns 0.5
The orchestrator discounts these (x0.7 by default) before merging.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..config import ExtractionConfig
from ..parse.models import Candidate, CandidateSource, ExtractionType, Property, Section
from ..validate.type_inference import MONTH_NAMES, TypeInferencer

logger = logging.getLogger(__name__)


URL_CONFIDENCE = 0.9
DATE_CONFIDENCE = 0.8
LABELED_NUMBER_CONFIDENCE = 0.7
GENERIC_CONFIDENCE = 0.5

NUMBER = r"(-?[0-9]+(?:\.[0-9]+)?)"

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)
DOI_PATTERN = re.compile(r"\bdoi:\s*(10\.\d{4,9}/[^\s<>\"]+)", re.IGNORECASE)
DATE_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(rf"\b{MONTH_NAMES}\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(r"\b(?:1[5-9]|20)\d{2}\b"),
]
GENERIC_NUMBER = re.compile(r"(?<![\w.])" + NUMBER + r"(?![\w])")

# Closing punctuation that belongs to the sentence rather than the URL
URL_TRAILING = ".,;:!?)]}'\""


@dataclass
class PatternSpec:
    """A compiled pattern with the confidence assigned to its matches."""
    pattern: re.Pattern
    confidence: float
    name: str


def _sentences_of(section: Any) -> tuple[str, ...]:
    if isinstance(section, Section):
        return section.sentences
    if isinstance(section, Mapping):
        return tuple(section.get("sentences") or ())
    return ()


class DeterministicExtractor:
    """
    Regex-based extraction driven by a property's extraction type and label.

    Scans sections in order, then sentences in order, and stops once
    max_values_per_property candidates have been collected.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        type_inferencer: Optional[TypeInferencer] = None,
    ):
        self.config = config or ExtractionConfig()
        self.type_inferencer = type_inferencer or TypeInferencer()

    def extract(self, sections: Mapping[str, Any], prop: Any) -> list[Candidate]:
        """
        Extract candidates for one property from processed sections.

        Args:
            sections: Mapping of section name to Section (or a mapping with
                a "sentences" list)
            prop: Property or property mapping

        Returns:
            Candidates with raw pattern confidence and source "deterministic"
        """
        prop = Property.coerce(prop)
        expected_type = self.type_inferencer.infer_from_template(prop)
        patterns = self.patterns_for(prop, expected_type)
        limit = self.config.max_values_per_property

        results: list[Candidate] = []
        seen_values: set[str] = set()

        for section_name, section in sections.items():
            for sentence in _sentences_of(section):
                for spec in patterns:
                    for match in spec.pattern.finditer(sentence):
                        value = self._match_value(match, spec)
                        if not value or not self.type_inferencer.validate_value(value, expected_type):
                            continue

                        key = value.lower()
                        if key in seen_values:
                            continue
                        seen_values.add(key)

                        results.append(Candidate(
                            value=value,
                            section=section_name,
                            sentence=sentence,
                            confidence=spec.confidence,
                            source=CandidateSource.DETERMINISTIC,
                        ))
                        if len(results) >= limit:
                            logger.debug(f"Deterministic extraction for '{prop.key}' hit limit of {limit}")
                            return results

        logger.debug(f"Deterministic extraction for '{prop.key}': {len(results)} candidates")
        return results

    def patterns_for(self, prop: Property, expected_type: ExtractionType) -> list[PatternSpec]:
        """Build the ordered pattern list for a property."""
        label = re.escape(prop.key.strip().lower())

        if expected_type == ExtractionType.NUMBER:
            return [
                PatternSpec(re.compile(rf"{label}[^0-9]*?{NUMBER}", re.IGNORECASE),
                            LABELED_NUMBER_CONFIDENCE, "label_then_number"),
                PatternSpec(re.compile(rf"{NUMBER}\s*%?\s*{label}", re.IGNORECASE),
                            LABELED_NUMBER_CONFIDENCE, "number_then_label"),
                PatternSpec(GENERIC_NUMBER, GENERIC_CONFIDENCE, "generic_number"),
            ]

        if expected_type == ExtractionType.DATE:
            return [PatternSpec(p, DATE_CONFIDENCE, "date") for p in DATE_PATTERNS]

        if expected_type == ExtractionType.URL:
            return [
                PatternSpec(URL_PATTERN, URL_CONFIDENCE, "url"),
                PatternSpec(DOI_PATTERN, URL_CONFIDENCE, "doi"),
            ]

        if expected_type == ExtractionType.BOOLEAN:
            return [
                PatternSpec(re.compile(rf"{label}[^.]*?\b(yes|no|true|false)\b", re.IGNORECASE),
                            GENERIC_CONFIDENCE, "label_then_boolean"),
            ]

        return [
            PatternSpec(re.compile(rf"{label}[^.]*?[:=]\s*([^.]+)", re.IGNORECASE),
                        GENERIC_CONFIDENCE, "label_delimiter_value"),
            PatternSpec(re.compile(rf"([^.]*{label}[^.]*)", re.IGNORECASE),
                        GENERIC_CONFIDENCE, "label_clause"),
        ]

    @staticmethod
    def _match_value(match: re.Match, spec: PatternSpec) -> str:
        value = match.group(1) if match.groups() else match.group(0)
        value = (value or "").strip()

        if spec.name == "url":
            value = value.rstrip(URL_TRAILING)
        elif spec.name == "doi":
            value = "https://doi.org/" + value.rstrip(URL_TRAILING)

        return value
