"""
Runner for property extraction over a single document.

Loads a document's sections and a property template from disk, runs the
orchestrator with the configured provider, and saves results together with
statistics and the decision trace.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..config import PipelineSettings
from ..extract.llm_provider import (
    Completer,
    LLMProvider,
    RateLimitConfig,
    create_completer,
    detect_provider,
)
from ..extract.orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


# =============================================================================
# Input Loading
# =============================================================================


def load_sections(path: Union[str, Path]) -> dict[str, str]:
    """
    Load a document's sections from JSON.

    Accepts either a plain object of section name to text, or an object
    with the sections under a "sections" key.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict) and isinstance(data.get("sections"), dict):
        data = data["sections"]
    if not isinstance(data, dict):
        raise ValueError(f"Sections file must contain a JSON object: {path}")

    return {str(name): text for name, text in data.items()}


def load_properties(path: Union[str, Path]) -> list[dict]:
    """
    Load property definitions from YAML or JSON.

    Accepts a list of property mappings, or an object with the list under a
    "properties" key.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("properties")
    if not isinstance(data, list):
        raise ValueError(f"Properties file must contain a list of properties: {path}")

    return data


# =============================================================================
# Runner
# =============================================================================


@dataclass
class ExtractionRun:
    """One extraction run over one document."""

    run_id: str
    settings: PipelineSettings
    config_hash: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    results: dict[str, list[dict]] = field(default_factory=dict)
    stats: dict[str, Any] = field(default_factory=dict)
    trace: Optional[dict] = None
    used_llm: bool = True

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "run_id": self.run_id,
            "config_hash": self.config_hash,
            "config": self.settings.model_dump(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "used_llm": self.used_llm,
            "results": self.results,
            "stats": self.stats,
            "trace": self.trace,
            "summary": self.summarize(),
        }

    def summarize(self) -> dict:
        """Generate summary statistics."""
        total_properties = len(self.results)
        found = sum(1 for values in self.results.values() if values)
        duration = (
            (self.completed_at - self.started_at).total_seconds()
            if self.completed_at else None
        )
        return {
            "total_properties": total_properties,
            "properties_with_values": found,
            "total_values": sum(len(values) for values in self.results.values()),
            "duration_seconds": duration,
        }


class PropertyRunner:
    """
    Runs the extraction pipeline with settings loaded from config.

    Usage:
        runner = PropertyRunner(load_config("configs/base.yaml"))
        run = runner.run(load_sections("paper.json"), load_properties("template.yaml"))
        runner.save_run(run, "output/paper_results.json")
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        completer: Optional[Completer] = None,
        use_llm: bool = True,
        api_key: Optional[str] = None,
    ):
        """
        Initialize runner.

        Args:
            settings: Pipeline settings (defaults if None)
            completer: Completion client; built from provider settings if None
            use_llm: If False, run pattern extraction only
            api_key: API key (if None, uses env var based on provider)

        Raises:
            ValueError: If a provider completer is needed but no API key is set
        """
        self.settings = settings or PipelineSettings()
        self.use_llm = use_llm
        self.completer = completer

        if self.use_llm and self.completer is None:
            self.completer = self._build_completer(api_key)

        self.orchestrator = ExtractionOrchestrator(
            config=self.settings.extraction,
            completer=self.completer if self.use_llm else None,
        )

    def _build_completer(self, api_key: Optional[str]) -> Completer:
        provider_settings = self.settings.provider
        if provider_settings.provider:
            provider = LLMProvider(provider_settings.provider.lower())
        else:
            provider = detect_provider(provider_settings.model)

        env_var = API_KEY_ENV_VARS[provider]
        api_key = api_key or os.getenv(env_var)
        if not api_key:
            raise ValueError(f"API key required for {provider.value} (set {env_var} or pass api_key)")

        rate_limit = RateLimitConfig(
            requests_per_minute=provider_settings.requests_per_minute,
            delay_between_calls=provider_settings.delay_between_calls,
        )
        return create_completer(
            provider=provider.value,
            model=provider_settings.model,
            api_key=api_key,
            rate_limit=rate_limit,
            temperature=provider_settings.temperature,
            max_tokens=provider_settings.max_tokens,
        )

    def _generate_run_id(self, name: Optional[str] = None) -> str:
        """Generate unique run ID."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_name = name or self.settings.name or "extract"
        run_name = run_name.replace(" ", "_").replace("/", "_")[:30]
        return f"run_{timestamp}_{run_name}"

    def run(
        self,
        sections: dict[str, str],
        properties: list[Any],
        name: Optional[str] = None,
    ) -> ExtractionRun:
        """
        Extract every property from one document.

        Args:
            sections: Mapping of section name to raw text
            properties: Property definitions
            name: Optional run name for the run ID

        Returns:
            ExtractionRun with results, statistics and trace
        """
        run = ExtractionRun(
            run_id=self._generate_run_id(name),
            settings=self.settings,
            config_hash=self.settings.config_hash(),
            started_at=datetime.now(),
            used_llm=self.use_llm,
        )
        logger.info(f"Starting extraction run: {run.run_id} (config hash: {run.config_hash})")

        if self.use_llm:
            results = self.orchestrator.extract(sections, properties)
        else:
            results = self.orchestrator.extract_deterministic(sections, properties)

        run.results = {
            key: [r.model_dump(mode="json") for r in values]
            for key, values in results.items()
        }
        run.stats = self.orchestrator.get_stats()
        if self.orchestrator.last_trace is not None:
            run.trace = self.orchestrator.last_trace.to_dict()
        run.completed_at = datetime.now()

        summary = run.summarize()
        logger.info(
            f"Run complete: {summary['properties_with_values']}/{summary['total_properties']} "
            f"properties with values ({summary['total_values']} values)"
        )
        return run

    def save_run(self, run: ExtractionRun, output_path: Union[str, Path]) -> Path:
        """Save a run to a JSON file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(run.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved run to: {output_path}")
        return output_path
