"""
Property extraction package.

This package provides prompted extraction of property values using any
completion client, with tolerant reply parsing, pattern-based fallback
and full decision tracing.
"""

from .prompts import (
    MULTI_PROPERTY_PROMPT,
    SINGLE_PROPERTY_PROMPT,
    PromptBuilder,
)

from .response_parser import (
    ResponseParser,
    find_balanced_block,
)

from .deterministic import DeterministicExtractor

from .llm_provider import (
    Completer,
    LLMProvider,
    RateLimitConfig,
    OpenAICompleter,
    AnthropicCompleter,
    call_with_retry,
    create_completer,
    detect_provider,
    ensure_completer,
)

from .observability import (
    DecisionType,
    LayerDecision,
    PropertyTrace,
    ExtractionTrace,
)

from .orchestrator import (
    ExtractionOrchestrator,
    extract_properties,
)

__all__ = [
    # Prompts
    "MULTI_PROPERTY_PROMPT",
    "SINGLE_PROPERTY_PROMPT",
    "PromptBuilder",
    # Parsing
    "ResponseParser",
    "find_balanced_block",
    # Fallback
    "DeterministicExtractor",
    # Providers
    "Completer",
    "LLMProvider",
    "RateLimitConfig",
    "OpenAICompleter",
    "AnthropicCompleter",
    "call_with_retry",
    "create_completer",
    "detect_provider",
    "ensure_completer",
    # Observability
    "DecisionType",
    "LayerDecision",
    "PropertyTrace",
    "ExtractionTrace",
    # Orchestration
    "ExtractionOrchestrator",
    "extract_properties",
]
