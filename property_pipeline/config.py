"""
Configuration management for property extraction.

Supports:
- Immutable extraction settings validated with Pydantic
- Loading settings from YAML
- Merging an override file onto a base file
- Config hashing for reproducibility
"""

import hashlib
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Config Models
# =============================================================================


class ExtractionConfig(BaseModel):
    """Extraction pipeline settings. Fixed for the lifetime of a pipeline."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_section_size: int = Field(default=3000, gt=0)  # Chars kept per section
    max_sentences_per_section: int = Field(default=50, gt=0)
    max_values_per_property: int = Field(default=10, gt=0)
    min_sentence_length: int = Field(default=10, ge=0)
    max_sentence_length: int = Field(default=500, gt=0)
    enable_multi_property_analysis: bool = True  # One model call for all properties
    enable_deterministic_fallback: bool = True
    enable_sentence_deduplication: bool = True  # Evidence exclusivity across properties
    confidence_threshold: float = Field(default=0.3, ge=0.0, le=1.0)  # Minimum asked of the model

    deterministic_discount: float = Field(default=0.7, ge=0.0, le=1.0)  # Applied to pattern confidence
    prompt_sentence_preview: int = Field(default=30, gt=0)  # Sentences per section shown in prompts
    max_retries: int = Field(default=2, ge=0)  # Retries after the first model call
    retry_base_delay: float = Field(default=1.0, ge=0.0)  # Seconds, multiplied by attempt number
    debug_mode: bool = False  # Log section coverage and pool stats

    def summary(self) -> dict[str, Any]:
        """Subset of settings reported alongside run statistics."""
        return {
            "max_section_size": self.max_section_size,
            "max_values_per_property": self.max_values_per_property,
            "enable_multi_property_analysis": self.enable_multi_property_analysis,
            "enable_deterministic_fallback": self.enable_deterministic_fallback,
            "enable_sentence_deduplication": self.enable_sentence_deduplication,
        }


class ProviderSettings(BaseModel):
    """Completion provider settings used by the runner."""

    provider: Optional[str] = None  # openai | anthropic (auto-detected from model if None)
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 4096
    delay_between_calls: float = 0.0  # Seconds to wait between API calls
    requests_per_minute: Optional[int] = None  # Max requests per minute (None = no limit)


class PipelineSettings(BaseModel):
    """Complete configuration file contents."""

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    name: Optional[str] = None

    def config_hash(self) -> str:
        """
        Generate hash of config for reproducibility tracking.

        Returns:
            SHA256 hash of serialized config (first 12 chars)
        """
        config_json = self.model_dump_json(exclude={"name"})
        return hashlib.sha256(config_json.encode()).hexdigest()[:12]


# =============================================================================
# Config Loading Functions
# =============================================================================


def load_yaml(path: Union[str, Path]) -> dict[str, Any]:
    """Load YAML file and return as dict."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(
    config_path: Union[str, Path],
    base_path: Optional[Union[str, Path]] = None,
) -> PipelineSettings:
    """
    Load pipeline settings from YAML.

    When base_path is given, config_path is treated as an override and
    deep-merged onto the base file.

    Args:
        config_path: Path to config file (base or override)
        base_path: Optional path to a base config

    Returns:
        PipelineSettings with all settings resolved
    """
    config_dict = load_yaml(config_path)

    if base_path is not None:
        base_dict = load_yaml(base_path)
        config_dict = deep_merge(base_dict, config_dict)
        logger.info(f"Merged config from {config_path} with base {base_path}")

    settings = PipelineSettings.model_validate(config_dict)

    logger.info(f"Loaded config: {settings.name or 'default'} (hash: {settings.config_hash()})")

    return settings


def save_config(settings: PipelineSettings, output_path: Union[str, Path]) -> Path:
    """Save resolved settings to a YAML file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(settings.model_dump(), f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved config to {output_path}")
    return output_path


# =============================================================================
# Config Validation
# =============================================================================


def validate_config(settings: PipelineSettings) -> list[str]:
    """
    Validate settings and return list of warnings.

    Returns:
        List of warning messages (empty if all good)
    """
    warnings = []
    extraction = settings.extraction

    if extraction.min_sentence_length >= extraction.max_sentence_length:
        warnings.append(
            f"min_sentence_length={extraction.min_sentence_length} is not below "
            f"max_sentence_length={extraction.max_sentence_length}; no sentence can pass"
        )

    if extraction.max_sentence_length > extraction.max_section_size:
        warnings.append(
            f"max_sentence_length={extraction.max_sentence_length} exceeds "
            f"max_section_size={extraction.max_section_size}"
        )

    if extraction.prompt_sentence_preview > extraction.max_sentences_per_section:
        warnings.append(
            f"prompt_sentence_preview={extraction.prompt_sentence_preview} is above "
            f"max_sentences_per_section={extraction.max_sentences_per_section} and has no effect"
        )

    # Linear backoff: base * 1 + base * 2 + ... + base * max_retries
    total_backoff = extraction.retry_base_delay * extraction.max_retries * (extraction.max_retries + 1) / 2
    if total_backoff > 30:
        warnings.append(
            f"Retry backoff totals {total_backoff:.0f}s per failing call "
            f"(max_retries={extraction.max_retries}, retry_base_delay={extraction.retry_base_delay})"
        )

    if settings.provider.provider not in (None, "openai", "anthropic"):
        warnings.append(
            f"Unknown provider: {settings.provider.provider}. Valid options: ['openai', 'anthropic']"
        )

    return warnings
