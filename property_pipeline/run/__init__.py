"""
Batch runner and CLI for property extraction.

Usage:
    python -m property_pipeline.run extract --sections paper.json --properties template.yaml
    python -m property_pipeline.run extract --sections paper.json --properties template.yaml --no-llm
    python -m property_pipeline.run show-config --config configs/base.yaml
"""

from .runner import (
    ExtractionRun,
    PropertyRunner,
    load_properties,
    load_sections,
)

__all__ = [
    "ExtractionRun",
    "PropertyRunner",
    "load_properties",
    "load_sections",
]
