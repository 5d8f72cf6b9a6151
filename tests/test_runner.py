"""
Tests for the extraction runner.

Tests cover:
1. Loading sections and property templates from disk
2. Runs with a stand-in completer and pattern-only runs
3. Saving runs
4. Completer construction from provider settings
"""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from property_pipeline.config import ExtractionConfig, PipelineSettings, ProviderSettings
from property_pipeline.extract.llm_provider import AnthropicCompleter, OpenAICompleter
from property_pipeline.run.runner import (
    ExtractionRun,
    PropertyRunner,
    load_properties,
    load_sections,
)


# ─── Test Data ───

SECTIONS = {
    "abstract": "We study image classification with a new residual network design.",
    "results": (
        "Accuracy: 95.3% on the test split. "
        "Code is available at https://github.com/org/repo."
    ),
}

PROPERTIES = [
    {"id": "P1", "label": "Accuracy", "dataType": "number"},
    {"id": "P2", "label": "Code", "type": "url"},
]


class StaticCompleter:
    """Returns the same reply for every prompt."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = 0

    def complete(self, prompt):
        self.calls += 1
        return self.reply


def _write(directory, name, content):
    path = Path(directory) / name
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadSections:
    """Tests for load_sections."""

    def test_plain_object(self):
        """Test a JSON object of section name to text."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "paper.json", json.dumps(SECTIONS))
            assert load_sections(path) == SECTIONS

    def test_wrapped_object(self):
        """Test sections nested under a "sections" key."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "paper.json", json.dumps({"title": "A paper", "sections": SECTIONS}))
            assert load_sections(path) == SECTIONS

    def test_invalid(self):
        """Test that a JSON array is rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "paper.json", json.dumps(["not", "sections"]))
            with pytest.raises(ValueError):
                load_sections(path)


class TestLoadProperties:
    """Tests for load_properties."""

    def test_yaml_list(self):
        """Test a YAML list of properties."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "template.yaml", yaml.dump(PROPERTIES))
            assert load_properties(path) == PROPERTIES

    def test_yaml_wrapped(self):
        """Test properties nested under a "properties" key."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "template.yml", yaml.dump({"name": "ml", "properties": PROPERTIES}))
            assert load_properties(path) == PROPERTIES

    def test_json_list(self):
        """Test a JSON list of properties."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "template.json", json.dumps(PROPERTIES))
            assert load_properties(path) == PROPERTIES

    def test_invalid(self):
        """Test that an object without a properties list is rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = _write(tmpdir, "template.yaml", yaml.dump({"name": "ml"}))
            with pytest.raises(ValueError):
                load_properties(path)


class TestPropertyRunner:
    """Tests for PropertyRunner."""

    def _settings(self, **extraction):
        return PipelineSettings(
            name="test run",
            extraction=ExtractionConfig(retry_base_delay=0, **extraction),
        )

    def test_run_with_completer(self):
        """Test a run with a stand-in completer."""
        reply = json.dumps({
            "Accuracy": [{
                "value": "95.3",
                "section": "results",
                "sentence": "Accuracy: 95.3% on the test split.",
                "confidence": 0.9,
            }],
            "Code": [],
        })
        completer = StaticCompleter(reply)
        runner = PropertyRunner(self._settings(), completer=completer)

        run = runner.run(SECTIONS, PROPERTIES)

        assert completer.calls == 1
        assert run.used_llm is True
        assert run.run_id.startswith("run_")
        assert run.run_id.endswith("_test_run")
        assert run.results["Accuracy"][0]["value"] == 95.3
        assert run.results["Accuracy"][0]["source"] == "model"
        assert run.results["Code"][0]["value"] == "https://github.com/org/repo"
        assert run.results["Code"][0]["source"] == "deterministic"
        assert run.stats["llm_calls"] == 1
        assert run.trace["mode"] == "batched"
        assert run.completed_at is not None

    def test_run_without_llm(self):
        """Test that a pattern-only run needs no API key."""
        runner = PropertyRunner(self._settings(), use_llm=False)

        run = runner.run(SECTIONS, PROPERTIES, name="patterns")

        assert run.used_llm is False
        assert run.run_id.endswith("_patterns")
        assert run.stats["llm_calls"] == 0
        assert run.results["Code"][0]["value"] == "https://github.com/org/repo"

    def test_summary(self):
        """Test run summary counts."""
        runner = PropertyRunner(self._settings(), use_llm=False)
        summary = runner.run(SECTIONS, PROPERTIES).summarize()

        assert summary["total_properties"] == 2
        assert summary["properties_with_values"] == 2
        assert summary["total_values"] >= 2
        assert summary["duration_seconds"] >= 0

    def test_save_run(self):
        """Test that a saved run is readable JSON."""
        runner = PropertyRunner(self._settings(), use_llm=False)
        run = runner.run(SECTIONS, PROPERTIES)

        with tempfile.TemporaryDirectory() as tmpdir:
            path = runner.save_run(run, Path(tmpdir) / "out" / "run.json")
            with open(path) as f:
                data = json.load(f)

        assert data["run_id"] == run.run_id
        assert data["config_hash"] == run.config_hash
        assert data["config"]["name"] == "test run"
        assert set(data["results"]) == {"Accuracy", "Code"}
        assert data["summary"]["total_properties"] == 2
        assert data["trace"]["mode"] == "deterministic"

    def test_empty_run_to_dict(self):
        """Test serialization of a run that has not completed."""
        from datetime import datetime

        run = ExtractionRun(
            run_id="run_x",
            settings=PipelineSettings(),
            config_hash="abc",
            started_at=datetime.now(),
        )
        data = run.to_dict()
        assert data["completed_at"] is None
        assert data["summary"]["duration_seconds"] is None


class TestCompleterConstruction:
    """Tests for building a completer from provider settings."""

    def test_missing_api_key(self, monkeypatch):
        """Test that a missing API key is reported."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            PropertyRunner(PipelineSettings())

    def test_key_from_environment(self, monkeypatch):
        """Test that the API key is read from the provider's variable."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        settings = PipelineSettings(provider=ProviderSettings(model="claude-haiku", delay_between_calls=1.5))

        runner = PropertyRunner(settings)

        assert isinstance(runner.completer, AnthropicCompleter)
        assert runner.completer.model == "claude-haiku-4-5-20251001"
        assert runner.completer.rate_limit.get_delay() == 1.5

    def test_explicit_provider(self):
        """Test that an explicit provider wins over detection."""
        settings = PipelineSettings(provider=ProviderSettings(provider="openai", model="gpt-4o"))
        runner = PropertyRunner(settings, api_key="sk-test")
        assert isinstance(runner.completer, OpenAICompleter)
