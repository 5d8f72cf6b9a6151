"""
Validation and merging of extraction candidates.

Every candidate passes, in order:
1. Structural check (value, sentence, section present; finite numeric confidence)
2. Sentence availability in the pool (conflicts are dropped, not kept)
3. Type validation
4. Type conversion
5. Case-insensitive value dedup within the call
6. Sentence claimed in the pool for this property
7. Stop once the per-property cap is reached

Rejections are counted by reason; they are never raised.
"""

import logging
import math
from collections import Counter
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from ..config import ExtractionConfig
from ..parse.models import Candidate, CandidateSource, Property, ValidatedResult
from ..parse.sentence_pool import SentencePool
from .type_inference import TypeInferencer

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    """Why a candidate was dropped during validation."""
    STRUCTURE = "structure"     # Missing field or non-finite confidence
    CONFLICT = "conflict"       # Sentence already claimed as evidence
    TYPE = "type"               # Value does not match the expected type
    CONVERSION = "conversion"   # Value could not be converted
    DUPLICATE = "duplicate"     # Same value already accepted in this call


def _as_dict(candidate: Any) -> Optional[dict]:
    if isinstance(candidate, Candidate):
        return candidate.model_dump()
    if isinstance(candidate, dict):
        return candidate
    return None


def _source_of(candidate: dict, default: Optional[CandidateSource]) -> Optional[CandidateSource]:
    try:
        return CandidateSource(candidate.get("source"))
    except ValueError:
        return default


def is_valid_candidate(candidate: Optional[dict]) -> bool:
    """Structural check for a raw candidate."""
    if not candidate:
        return False
    value = candidate.get("value")
    if value is None or value == "":
        return False
    if not candidate.get("sentence") or not isinstance(candidate.get("sentence"), str):
        return False
    if not candidate.get("section") or not isinstance(candidate.get("section"), str):
        return False
    confidence = candidate.get("confidence")
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
        return False
    return math.isfinite(confidence)


class ResultValidator:
    """
    Enforces structural validity, evidence exclusivity and type correctness.

    Shares its SentencePool with the orchestrator that owns it.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        type_inferencer: Optional[TypeInferencer] = None,
        sentence_pool: Optional[SentencePool] = None,
    ):
        self.config = config or ExtractionConfig()
        self.type_inferencer = type_inferencer or TypeInferencer()
        self.sentence_pool = sentence_pool if sentence_pool is not None else SentencePool()
        self.rejections: Counter = Counter()

    def validate_results(
        self,
        candidates: Optional[Iterable[Any]],
        prop: Any,
        limit: Optional[int] = None,
        source: Optional[CandidateSource] = None,
    ) -> list[ValidatedResult]:
        """
        Validate candidates for one property.

        Args:
            candidates: Raw candidate dicts or Candidate models
            prop: Property (or mapping) the candidates belong to
            limit: Optional cap below max_values_per_property
            source: Source recorded on results whose own source is missing
                or unrecognized

        Returns:
            Accepted results with converted values, in input order
        """
        if not candidates or not isinstance(candidates, (list, tuple)):
            return []

        prop = Property.coerce(prop)
        expected_type = self.type_inferencer.infer_from_template(prop)
        cap = self.config.max_values_per_property
        if limit is not None:
            cap = min(cap, limit)
        if cap <= 0:
            return []

        validated: list[ValidatedResult] = []
        seen_values: set[str] = set()

        for raw in candidates:
            candidate = _as_dict(raw)
            if not is_valid_candidate(candidate):
                self._reject(RejectionReason.STRUCTURE, prop, candidate)
                continue

            sentence = candidate["sentence"]
            if self.config.enable_sentence_deduplication and not self.sentence_pool.is_available(sentence):
                # Flagged and halved for the trace, then excluded from output
                candidate = {**candidate, "conflict": True, "confidence": candidate["confidence"] * 0.5}
                self._reject(RejectionReason.CONFLICT, prop, candidate)
                continue

            if not self.type_inferencer.validate_value(candidate["value"], expected_type):
                self._reject(RejectionReason.TYPE, prop, candidate)
                continue

            converted = self.type_inferencer.convert_value(candidate["value"], expected_type)
            if converted is None:
                self._reject(RejectionReason.CONVERSION, prop, candidate)
                continue

            value_key = str(converted).lower()
            if value_key in seen_values:
                self._reject(RejectionReason.DUPLICATE, prop, candidate)
                continue
            seen_values.add(value_key)

            if self.config.enable_sentence_deduplication:
                self.sentence_pool.mark_used(sentence, prop.owner_id)

            validated.append(ValidatedResult(
                value=converted,
                section=candidate["section"],
                sentence=sentence,
                confidence=min(max(float(candidate["confidence"]), 0.0), 1.0),
                source=_source_of(candidate, source),
                expected_type=expected_type,
            ))

            if len(validated) >= cap:
                break

        return validated

    def merge_results(
        self,
        model_results: Sequence[Candidate],
        deterministic_results: Sequence[Candidate],
    ) -> list[Candidate]:
        """
        Merge model and deterministic results.

        Model results take priority. A deterministic result is added only if
        its (value, sentence) pair is new and the cap has not been reached.
        The merged list is sorted by descending confidence.
        """
        merged: list[Candidate] = []
        seen: set[tuple[str, str]] = set()

        for result in model_results or []:
            key = (str(result.value), result.sentence)
            if key not in seen:
                seen.add(key)
                merged.append(result)

        for result in deterministic_results or []:
            key = (str(result.value), result.sentence)
            if key not in seen and len(merged) < self.config.max_values_per_property:
                seen.add(key)
                merged.append(result)

        return sorted(merged, key=lambda r: r.confidence, reverse=True)

    @property
    def validation_errors(self) -> int:
        """Candidates dropped for structure, type or conversion failures."""
        return sum(
            self.rejections[reason]
            for reason in (RejectionReason.STRUCTURE, RejectionReason.TYPE, RejectionReason.CONVERSION)
        )

    def reset(self) -> None:
        self.rejections.clear()

    def _reject(self, reason: RejectionReason, prop: Property, candidate: Optional[dict]) -> None:
        self.rejections[reason] += 1
        if reason == RejectionReason.CONFLICT:
            logger.debug(
                f"Sentence for '{prop.key}' already claimed by "
                f"'{self.sentence_pool.owner(candidate['sentence'])}': {candidate['sentence'][:80]}"
            )
        else:
            value = candidate.get("value") if candidate else None
            logger.debug(f"Rejected candidate for '{prop.key}' ({reason.value}): {value!r}")
