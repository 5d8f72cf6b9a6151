"""
Decision tracing for property extraction runs.

Every property processed by the orchestrator gets a PropertyTrace that
records, in order, what each stage decided: model extraction, parse
failures, provider failures, deterministic fallback and merges. The trace
of the most recent run is kept on the orchestrator as ``last_trace``.

Usage:
    trace = ExtractionTrace(mode="batched")
    trace.add(LayerDecision(
        layer_name="deterministic",
        property_key="accuracy",
        decision=DecisionType.FALLBACK,
        output_value=[95.3],
        evidence="Model returned no usable values",
    ))
    print(trace.get("accuracy").explain_decision())
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    """Type of decision made by a pipeline stage."""
    EXTRACT = "extract"                    # Values accepted from the model
    FALLBACK = "fallback"                  # Deterministic results used instead
    MERGE = "merge"                        # Model and deterministic results combined
    PARSE_FAILURE = "parse_failure"        # Reply could not be parsed
    PROVIDER_FAILURE = "provider_failure"  # Model call failed after retries
    ERROR = "error"                        # Unexpected failure in this property


@dataclass
class LayerDecision:
    """Single decision from one pipeline stage for one property."""
    layer_name: str              # "batched_model", "single_model", "deterministic", "merge"
    property_key: str
    decision: DecisionType
    output_value: Any = None     # Accepted values after this stage
    count: int = 0               # Number of results after this stage
    evidence: str = ""           # Why this decision was made
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "layer_name": self.layer_name,
            "property_key": self.property_key,
            "decision": self.decision.value,
            "output_value": _serialize_value(self.output_value),
            "count": self.count,
            "evidence": self.evidence,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PropertyTrace:
    """The path of one property through the pipeline."""
    property_key: str
    decisions: list[LayerDecision] = field(default_factory=list)
    result_count: int = 0
    extraction_source: Optional[str] = None  # Stage that produced the final results

    def add_decision(self, decision: LayerDecision) -> None:
        self.decisions.append(decision)
        if decision.decision in (DecisionType.EXTRACT, DecisionType.FALLBACK, DecisionType.MERGE):
            self.result_count = decision.count
            self.extraction_source = decision.layer_name if decision.count else self.extraction_source

    @property
    def used_fallback(self) -> bool:
        return any(d.decision == DecisionType.FALLBACK for d in self.decisions)

    def explain_decision(self) -> str:
        """
        Generate human-readable explanation of the extraction path.

        Returns:
            Multi-line string listing each decision in order
        """
        lines = [f"{'=' * 50}"]
        lines.append(f"Property: {self.property_key}")
        lines.append(f"{'=' * 50}")
        lines.append(f"Results: {self.result_count}")
        lines.append(f"Source stage: {self.extraction_source or 'N/A'}")
        lines.append("")
        lines.append("Decision trace:")
        lines.append("-" * 50)

        for i, d in enumerate(self.decisions, 1):
            lines.append(f"  [{i}] {d.layer_name} -> {d.decision.value} ({d.count} results)")
            if d.output_value is not None:
                lines.append(f"      Output: {_format_value(d.output_value)}")
            if d.evidence:
                lines.append(f"      Why: {d.evidence}")
            for key, val in d.metadata.items():
                lines.append(f"      {key}: {val}")
            lines.append("")

        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "property_key": self.property_key,
            "result_count": self.result_count,
            "extraction_source": self.extraction_source,
            "decision_count": len(self.decisions),
            "decisions": [d.to_dict() for d in self.decisions],
        }


@dataclass
class ExtractionTrace:
    """Decision traces for every property of one extract() call."""
    mode: str = "per_property"  # "batched" or "per_property"
    properties: dict[str, PropertyTrace] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def add(self, decision: LayerDecision) -> None:
        """Record a decision under its property, creating the trace as needed."""
        trace = self.properties.get(decision.property_key)
        if trace is None:
            trace = PropertyTrace(property_key=decision.property_key)
            self.properties[decision.property_key] = trace
        trace.add_decision(decision)

    def get(self, property_key: str) -> Optional[PropertyTrace]:
        return self.properties.get(property_key)

    def mark_complete(self) -> None:
        self.completed_at = datetime.now()

    def summarize(self) -> dict:
        """
        Generate high-level summary for logging.

        Returns:
            Dictionary with summary statistics
        """
        total = len(self.properties)
        with_results = sum(1 for t in self.properties.values() if t.result_count > 0)

        by_source: dict[str, int] = {}
        by_decision: dict[str, int] = {}
        for trace in self.properties.values():
            if trace.extraction_source:
                by_source[trace.extraction_source] = by_source.get(trace.extraction_source, 0) + 1
            for d in trace.decisions:
                by_decision[d.decision.value] = by_decision.get(d.decision.value, 0) + 1

        return {
            "mode": self.mode,
            "total_properties": total,
            "with_results": with_results,
            "coverage_pct": f"{with_results/total*100:.1f}%" if total > 0 else "0%",
            "by_source": by_source,
            "by_decision": by_decision,
            "duration_seconds": (
                (self.completed_at - self.started_at).total_seconds()
                if self.completed_at else None
            ),
        }

    def to_dict(self) -> dict:
        """Export full trace to dictionary."""
        return {
            "mode": self.mode,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": self.summarize(),
            "properties": {
                key: trace.to_dict()
                for key, trace in self.properties.items()
            },
        }

    def save(self, output_path: Union[str, Path]) -> Path:
        """Save trace to a JSON file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved decision trace to {output_path}")
        return output_path


# =============================================================================
# Utility Functions
# =============================================================================

def _serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    return str(value)


def _format_value(value: Any, max_length: int = 80) -> str:
    """Format a value for display."""
    s = str(value)
    if len(s) > max_length:
        return s[:max_length - 3] + "..."
    return s
