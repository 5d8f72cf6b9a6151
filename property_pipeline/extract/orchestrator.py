"""
Property extraction orchestrator.

Coordinates one extraction run over a document's sections:
1. Prepare: clean and segment sections, clear the sentence pool
2. Strategy: batched (one model call for all properties) when enabled and
   more than one property is requested, per-property otherwise
3. Batched: validate each property's slice of the parsed reply, falling
   back to deterministic results for properties that come back empty
4. Per-property: model call, parse and validate for each property in
   turn, then merge with deterministic results
5. Finish: every requested property key maps to a (possibly empty) list

Model, parse and validation problems never escape extract(). They end in
deterministic results or an empty list for the affected property.
"""

import logging
import re
from typing import Any, Mapping, Optional, Sequence

from ..config import ExtractionConfig
from ..errors import ProviderUnavailableError
from ..parse.models import Candidate, CandidateSource, Property, Section, ValidatedResult
from ..parse.sentence_pool import SentencePool
from ..parse.text_processor import TextProcessor
from ..validate.result_validator import ResultValidator
from ..validate.type_inference import TypeInferencer
from .deterministic import DeterministicExtractor
from .llm_provider import Completer, call_with_retry, ensure_completer
from .observability import DecisionType, ExtractionTrace, LayerDecision
from .prompts import PromptBuilder
from .response_parser import ResponseParser

logger = logging.getLogger(__name__)

Results = dict[str, list[ValidatedResult]]

# Keys a per-property reply may wrap its candidate array in
WRAPPER_KEYS = ("results", "values", "data", "candidates")


def _normalize_key(key: Any) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(key).lower()).strip("_")


def lookup_property(parsed: Mapping[str, Any], prop: Property) -> Any:
    """
    Find a property's entry in a parsed reply.

    Tries the property key, label and id verbatim, then compares keys with
    case and punctuation normalized away.
    """
    for key in (prop.key, prop.label, prop.id):
        if key and key in parsed:
            return parsed[key]

    wanted = {_normalize_key(k) for k in (prop.label, prop.id) if k}
    for key, value in parsed.items():
        if _normalize_key(key) in wanted:
            return value
    return None


def _as_candidate_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


class ExtractionOrchestrator:
    """
    Runs the extraction pipeline for a set of properties.

    Owns one SentencePool and the running statistics. A single instance
    must not run two extract() calls at the same time.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        completer: Optional[Completer] = None,
        sentence_pool: Optional[SentencePool] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Extraction settings (defaults used if None)
            completer: Default completion client; anything with complete(prompt) -> str
            sentence_pool: Pool to share; a fresh one is created if None

        Raises:
            ProviderUnavailableError: If completer lacks a callable complete()
        """
        self.config = config or ExtractionConfig()
        self.completer = ensure_completer(completer) if completer is not None else None
        self.sentence_pool = sentence_pool if sentence_pool is not None else SentencePool()

        self.type_inferencer = TypeInferencer()
        self.text_processor = TextProcessor(self.config)
        self.prompt_builder = PromptBuilder(self.config, self.type_inferencer)
        self.response_parser = ResponseParser()
        self.deterministic = DeterministicExtractor(self.config, self.type_inferencer)
        self.validator = ResultValidator(self.config, self.type_inferencer, self.sentence_pool)

        self.stats = self._empty_stats()
        self.last_trace: Optional[ExtractionTrace] = None

    # =========================================================================
    # Public API
    # =========================================================================

    def extract(
        self,
        sections: Mapping[str, str],
        properties: Sequence[Any],
        completer: Optional[Completer] = None,
    ) -> Results:
        """
        Extract values for every requested property.

        Args:
            sections: Mapping of section name to raw text
            properties: Property models or mappings
            completer: Completion client for this call (overrides the default)

        Returns:
            Mapping of property key (label or id) to validated results

        Raises:
            ProviderUnavailableError: If no usable completer is available
        """
        client = ensure_completer(completer if completer is not None else self.completer)
        props = [Property.coerce(p) for p in properties or []]
        processed = self._prepare(sections)

        batched = self.config.enable_multi_property_analysis and len(props) > 1
        trace = ExtractionTrace(mode="batched" if batched else "per_property")
        logger.info(
            f"Extracting {len(props)} properties from {len(processed)} sections "
            f"({trace.mode} mode)"
        )

        if batched:
            results = self._extract_batched(processed, props, client, trace)
        else:
            results = self._extract_per_property(processed, props, client, trace)

        return self._finish(results, props, trace)

    def extract_deterministic(
        self,
        sections: Mapping[str, str],
        properties: Sequence[Any],
    ) -> Results:
        """Run the pipeline without a model, using pattern extraction only."""
        props = [Property.coerce(p) for p in properties or []]
        processed = self._prepare(sections)
        trace = ExtractionTrace(mode="deterministic")
        logger.info(f"Extracting {len(props)} properties from {len(processed)} sections (deterministic only)")

        results = {
            prop.key: self._run_deterministic(processed, prop, trace, "No model configured")
            for prop in props
        }
        return self._finish(results, props, trace)

    def get_stats(self) -> dict[str, Any]:
        """Running counters plus sentence pool usage and key settings."""
        return {
            **self.stats,
            "validation_errors": self.validator.validation_errors,
            "sentence_pool_stats": self.sentence_pool.stats(),
            "config": self.config.summary(),
        }

    def reset_stats(self) -> None:
        """Zero the counters and release every claimed sentence."""
        self.stats = self._empty_stats()
        self.validator.reset()
        self.sentence_pool.clear()

    # =========================================================================
    # Stages
    # =========================================================================

    def _prepare(self, sections: Optional[Mapping[str, str]]) -> dict[str, Section]:
        processed = self.text_processor.process_sections(sections or {})
        self.sentence_pool.clear()
        self.stats["total_extractions"] += 1

        if self.config.debug_mode:
            self.text_processor.log_section_coverage(processed)
        return processed

    def _extract_batched(
        self,
        sections: dict[str, Section],
        props: list[Property],
        client: Completer,
        trace: ExtractionTrace,
    ) -> Results:
        prompt = self.prompt_builder.build_multi_property_prompt(sections, props)
        try:
            reply = self._call_model(client, prompt)
        except ProviderUnavailableError as e:
            logger.warning(f"Batched model call failed, using deterministic results for all properties: {e}")
            for prop in props:
                trace.add(LayerDecision(
                    layer_name="batched_model",
                    property_key=prop.key,
                    decision=DecisionType.PROVIDER_FAILURE,
                    evidence=str(e),
                ))
            return {
                prop.key: self._deterministic_only(sections, prop, trace, "Batched model call failed")
                for prop in props
            }

        parsed = self._parse(reply, "batched reply")
        if not isinstance(parsed, dict):
            logger.warning(
                f"Batched reply parsed to {type(parsed).__name__}, not a mapping; "
                f"switching to per-property mode"
            )
            trace.mode = "per_property"
            return self._extract_per_property(sections, props, client, trace)

        results: Results = {}
        # Request order decides which property claims a contested sentence
        for prop in props:
            candidates = _as_candidate_list(lookup_property(parsed, prop))
            validated = self.validator.validate_results(candidates, prop, source=CandidateSource.MODEL)
            trace.add(LayerDecision(
                layer_name="batched_model",
                property_key=prop.key,
                decision=DecisionType.EXTRACT,
                output_value=[r.value for r in validated],
                count=len(validated),
                metadata={"candidates": len(candidates)},
            ))

            if not validated and self.config.enable_deterministic_fallback:
                validated = self._deterministic_only(sections, prop, trace, "Model returned no usable values")

            results[prop.key] = validated

        return results

    def _extract_per_property(
        self,
        sections: dict[str, Section],
        props: list[Property],
        client: Completer,
        trace: ExtractionTrace,
    ) -> Results:
        results: Results = {}
        for prop in props:
            try:
                results[prop.key] = self._extract_property(sections, prop, client, trace)
            except Exception as e:
                logger.error(f"Extraction failed for '{prop.key}': {type(e).__name__}: {e}")
                trace.add(LayerDecision(
                    layer_name="single_model",
                    property_key=prop.key,
                    decision=DecisionType.ERROR,
                    evidence=f"{type(e).__name__}: {e}",
                ))
                results[prop.key] = self._deterministic_only(sections, prop, trace, "Unexpected error")
        return results

    def _extract_property(
        self,
        sections: dict[str, Section],
        prop: Property,
        client: Completer,
        trace: ExtractionTrace,
    ) -> list[ValidatedResult]:
        prompt = self.prompt_builder.build_single_property_prompt(sections, prop)
        try:
            reply = self._call_model(client, prompt)
        except ProviderUnavailableError as e:
            logger.warning(f"Model call failed for '{prop.key}', using deterministic results: {e}")
            trace.add(LayerDecision(
                layer_name="single_model",
                property_key=prop.key,
                decision=DecisionType.PROVIDER_FAILURE,
                evidence=str(e),
            ))
            return self._deterministic_only(sections, prop, trace, "Model call failed")

        parsed = self._parse(reply, f"'{prop.key}'")
        if parsed is None:
            trace.add(LayerDecision(
                layer_name="single_model",
                property_key=prop.key,
                decision=DecisionType.PARSE_FAILURE,
                evidence=reply[:200],
            ))

        candidates = self._single_property_candidates(parsed, prop)
        model_results = self.validator.validate_results(candidates, prop, source=CandidateSource.MODEL)
        trace.add(LayerDecision(
            layer_name="single_model",
            property_key=prop.key,
            decision=DecisionType.EXTRACT,
            output_value=[r.value for r in model_results],
            count=len(model_results),
            metadata={"candidates": len(candidates)},
        ))

        if not self.config.enable_deterministic_fallback:
            return model_results
        if not model_results:
            return self._deterministic_only(sections, prop, trace, "Model returned no usable values")

        remaining = self.config.max_values_per_property - len(model_results)
        deterministic_results = []
        if remaining > 0:
            deterministic_results = self.validator.validate_results(
                self._deterministic_candidates(sections, prop), prop, limit=remaining,
            )

        merged = self.validator.merge_results(model_results, deterministic_results)
        trace.add(LayerDecision(
            layer_name="merge",
            property_key=prop.key,
            decision=DecisionType.MERGE,
            output_value=[r.value for r in merged],
            count=len(merged),
            metadata={"model": len(model_results), "deterministic": len(deterministic_results)},
        ))
        return merged

    def _finish(self, results: Results, props: list[Property], trace: ExtractionTrace) -> Results:
        for prop in props:
            results.setdefault(prop.key, [])

        trace.mark_complete()
        self.last_trace = trace

        total = sum(len(v) for v in results.values())
        logger.info(f"Extracted {total} values for {len(results)} properties")
        if self.config.debug_mode:
            logger.info(f"Sentence pool: {self.sentence_pool.stats()}")
            logger.info(f"Trace summary: {trace.summarize()}")

        return results

    # =========================================================================
    # Helpers
    # =========================================================================

    def _call_model(self, client: Completer, prompt: str) -> str:
        self.stats["llm_calls"] += 1
        return call_with_retry(
            client,
            prompt,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
        )

    def _parse(self, reply: str, label: str) -> Any:
        parsed, strategy = self.response_parser.parse_with_strategy(reply)
        if parsed is None:
            self.stats["parse_errors"] += 1
            logger.warning(f"Could not parse model reply for {label}: {reply[:100]!r}")
        elif strategy != "direct":
            logger.debug(f"Model reply for {label} needed the '{strategy}' strategy")
        return parsed

    def _single_property_candidates(self, parsed: Any, prop: Property) -> list:
        """
        Candidates from a per-property reply.

        Accepts an array, a mapping keyed by the property, a single candidate
        object, or an array under one of WRAPPER_KEYS. Entries keyed by any
        other property are ignored.
        """
        if isinstance(parsed, list):
            return parsed
        if not isinstance(parsed, dict):
            return []

        entry = lookup_property(parsed, prop)
        if entry is not None:
            return _as_candidate_list(entry)
        if "value" in parsed:
            return [parsed]
        for key in WRAPPER_KEYS:
            if isinstance(parsed.get(key), list):
                return parsed[key]
        return []

    def _deterministic_candidates(self, sections: dict[str, Section], prop: Property) -> list[Candidate]:
        discount = self.config.deterministic_discount
        return [
            candidate.model_copy(update={"confidence": candidate.confidence * discount})
            for candidate in self.deterministic.extract(sections, prop)
        ]

    def _deterministic_only(
        self,
        sections: dict[str, Section],
        prop: Property,
        trace: ExtractionTrace,
        reason: str,
    ) -> list[ValidatedResult]:
        """Validated deterministic results, or [] when fallback is disabled or fails."""
        if not self.config.enable_deterministic_fallback:
            return []

        self.stats["fallbacks_used"] += 1
        return self._run_deterministic(sections, prop, trace, reason)

    def _run_deterministic(
        self,
        sections: dict[str, Section],
        prop: Property,
        trace: ExtractionTrace,
        reason: str,
    ) -> list[ValidatedResult]:
        try:
            results = self.validator.validate_results(self._deterministic_candidates(sections, prop), prop)
        except Exception as e:
            logger.error(f"Deterministic extraction failed for '{prop.key}': {type(e).__name__}: {e}")
            results = []

        logger.info(f"Fallback for '{prop.key}' ({reason}): {len(results)} deterministic values")
        trace.add(LayerDecision(
            layer_name="deterministic",
            property_key=prop.key,
            decision=DecisionType.FALLBACK,
            output_value=[r.value for r in results],
            count=len(results),
            evidence=reason,
        ))
        return results

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            "total_extractions": 0,
            "llm_calls": 0,
            "fallbacks_used": 0,
            "parse_errors": 0,
        }


def extract_properties(
    sections: Mapping[str, str],
    properties: Sequence[Any],
    completer: Optional[Completer] = None,
    config: Optional[ExtractionConfig] = None,
    **overrides,
) -> Results:
    """
    One-shot extraction with a fresh orchestrator.

    Args:
        sections: Mapping of section name to raw text
        properties: Property models or mappings
        completer: Completion client; pattern extraction only if None
        config: Base settings
        **overrides: ExtractionConfig fields overriding config

    Returns:
        Mapping of property key to validated results
    """
    if overrides:
        base = config.model_dump() if config else {}
        config = ExtractionConfig(**{**base, **overrides})

    orchestrator = ExtractionOrchestrator(config=config)
    if completer is None:
        return orchestrator.extract_deterministic(sections, properties)
    return orchestrator.extract(sections, properties, completer=completer)
