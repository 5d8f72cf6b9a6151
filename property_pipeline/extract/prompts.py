"""
Extraction prompts for property value extraction.

Prompts are rendered from module-level templates:
- A multi-property prompt used in batched mode (one call for all properties)
- A single-property prompt used in per-property mode
Both enforce sentence exclusivity, full-section scanning and a fixed
candidate shape with confidence scores.
"""

import logging
from typing import Mapping, Optional, Sequence

from ..config import ExtractionConfig
from ..parse.models import ExtractionType, Property, Section
from ..validate.type_inference import TypeInferencer

logger = logging.getLogger(__name__)


# =============================================================================
# TEMPLATES
# =============================================================================

MULTI_PROPERTY_PROMPT = """You are analyzing a scientific paper to extract specific property values.

IMPORTANT RULES:
1. Each sentence can only be used ONCE across all properties
2. Scan ALL sections thoroughly, not just the first match
3. Return actual values found in the text, not descriptions
4. Each property can have zero or more values from different sections
5. Include a confidence score between 0 and 1 for each value
6. Omit values with confidence below {threshold}

SECTIONS TO ANALYZE:
{sections_list}

PROPERTIES TO EXTRACT:
{properties_list}

PAPER CONTENT:
{content}

Return a JSON object where each property maps to an array of found values:
{{
  "propertyLabel": [
    {{
      "value": "extracted value",
      "section": "section name",
      "sentence": "exact sentence containing the value",
      "confidence": 0.85
    }}
  ]
}}

Remember: Each sentence may only be used once. If a sentence could match multiple properties, assign it to the most relevant one."""


SINGLE_PROPERTY_PROMPT = """Extract values for the property "{label}" from this scientific paper.

Property Description: {description}
Expected Data Type: {data_type}
{hint}

IMPORTANT:
- Scan ALL sections thoroughly, not just the first match
- Return actual values, not descriptions
- Each value must come from a unique sentence
- Include a confidence score between 0 and 1 for each value
- Omit values with confidence below {threshold}

PAPER CONTENT:
{content}

Return a JSON array of found values (an empty array if none):
[
  {{
    "value": "extracted value",
    "section": "section name",
    "sentence": "exact sentence",
    "confidence": 0.85
  }}
]"""


DATA_TYPE_HINTS = {
    "number": "Look for numerical values, measurements, statistics, counts.",
    "date": "Look for dates, years, time periods, temporal references.",
    "url": "Look for web addresses, links, DOIs.",
    "boolean": "Look for yes/no statements, presence/absence, true/false.",
    "resource": "Look for names, identifiers, references to entities.",
    "text": "Look for descriptive text, explanations, definitions.",
}

NO_DESCRIPTION = "No description provided"


class PromptBuilder:
    """Renders extraction prompts from processed sections and properties."""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        type_inferencer: Optional[TypeInferencer] = None,
    ):
        self.config = config or ExtractionConfig()
        self.type_inferencer = type_inferencer or TypeInferencer()

    def build_multi_property_prompt(
        self,
        sections: Mapping[str, Section],
        properties: Sequence[Property],
    ) -> str:
        """Render one prompt covering every requested property."""
        sections_list = "\n".join(
            f"- {name}: {len(section.sentences)} sentences"
            for name, section in sections.items()
        )
        lines = []
        for prop in properties:
            lines.append(f"- {prop.key} ({prop.data_type or 'text'}): {prop.description or NO_DESCRIPTION}")
            hint = self.data_type_hint(prop)
            if hint:
                lines.append(f"  {hint}")
        properties_list = "\n".join(lines)

        return MULTI_PROPERTY_PROMPT.format(
            threshold=self.config.confidence_threshold,
            sections_list=sections_list,
            properties_list=properties_list,
            content=self.format_sections(sections),
        )

    def build_single_property_prompt(
        self,
        sections: Mapping[str, Section],
        prop: Property,
    ) -> str:
        """Render a prompt for one property."""
        return SINGLE_PROPERTY_PROMPT.format(
            label=prop.key,
            description=prop.description or NO_DESCRIPTION,
            data_type=prop.data_type or "text",
            hint=self.data_type_hint(prop),
            threshold=self.config.confidence_threshold,
            content=self.format_sections(sections),
        )

    def format_sections(self, sections: Mapping[str, Section]) -> str:
        """Format sections as ``[name]`` headers followed by a sentence preview."""
        preview = self.config.prompt_sentence_preview
        return "\n\n".join(
            f"\n[{name}]\n{' '.join(section.sentences[:preview])}"
            for name, section in sections.items()
        )

    def data_type_hint(self, prop: Property) -> str:
        """
        Type-specific hint line for a property.

        Declared "resource" keeps its own hint; other declared types use the
        hint of their inferred extraction type.
        """
        declared = (prop.data_type or "").strip().lower()
        if declared in DATA_TYPE_HINTS:
            return f"Hint: {DATA_TYPE_HINTS[declared]}"

        inferred = self.type_inferencer.infer_from_template(prop)
        if inferred == ExtractionType.TEXT and declared not in ("", "string"):
            # Unknown declared type: no hint rather than a misleading one
            return ""
        return f"Hint: {DATA_TYPE_HINTS[inferred.value]}"
