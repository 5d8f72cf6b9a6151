"""
Type inference and value coercion for extracted property values.

Maps loosely-typed template data types onto the extraction type vocabulary
and checks/converts raw string values against it.
"""

import logging
import re
from typing import Any, Mapping, Optional, Union

from ..parse.models import ExtractionType, Property

logger = logging.getLogger(__name__)


# Template data type -> extraction type
TEMPLATE_TYPE_MAP = {
    "resource": ExtractionType.TEXT,
    "string": ExtractionType.TEXT,
    "text": ExtractionType.TEXT,
    "number": ExtractionType.NUMBER,
    "integer": ExtractionType.NUMBER,
    "float": ExtractionType.NUMBER,
    "date": ExtractionType.DATE,
    "boolean": ExtractionType.BOOLEAN,
    "url": ExtractionType.URL,
}

MONTH_NAMES = (
    r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?"
)

TYPE_PATTERNS = {
    "number": re.compile(r"^-?\d+\.?\d*$"),
    "date": re.compile(
        r"\d{4}-\d{2}-\d{2}"                       # 2021-03-15
        r"|\d{1,2}/\d{1,2}/\d{2,4}"                 # 3/15/2021
        rf"|\b{MONTH_NAMES}\s+\d{{1,2}},?\s+\d{{4}}\b"  # March 15, 2021
        r"|^\s*(?:1[5-9]|20)\d{2}\s*$",             # 2021
        re.IGNORECASE,
    ),
    "url": re.compile(r"^https?://\S+", re.IGNORECASE),
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "boolean": re.compile(r"^(true|false|yes|no|0|1)$", re.IGNORECASE),
}

TRUTHY = re.compile(r"^(true|yes|1)$", re.IGNORECASE)

PropertyLike = Union[Property, Mapping[str, Any], None]


def _declared_type(template_property: PropertyLike) -> str:
    if template_property is None:
        return "text"
    if isinstance(template_property, Property):
        return template_property.data_type or "text"
    return (
        template_property.get("data_type")
        or template_property.get("dataType")
        or template_property.get("type")
        or "text"
    )


class TypeInferencer:
    """Infers extraction types and validates/converts values against them."""

    def infer_from_template(self, template_property: PropertyLike) -> ExtractionType:
        """
        Map a property's declared data type to an extraction type.

        Unknown or missing types map to text.
        """
        declared = str(_declared_type(template_property)).strip().lower()
        return TEMPLATE_TYPE_MAP.get(declared, ExtractionType.TEXT)

    def validate_value(self, value: Any, expected_type: Union[ExtractionType, str]) -> bool:
        """
        Check a raw value against the pattern for its expected type.

        Types without a pattern accept any non-empty string.
        """
        if value is None or value == "":
            return False

        str_value = str(value).strip()
        type_name = expected_type.value if isinstance(expected_type, ExtractionType) else expected_type

        pattern = TYPE_PATTERNS.get(type_name)
        if pattern is None:
            return len(str_value) > 0
        return bool(pattern.search(str_value))

    def convert_value(self, value: Any, expected_type: Union[ExtractionType, str]) -> Optional[Any]:
        """
        Convert a raw value to the native representation of its type.

        Returns:
            int/float for numbers, bool for booleans, trimmed str otherwise;
            None when conversion fails
        """
        if value is None or value == "":
            return None

        str_value = str(value).strip()
        if not str_value:
            return None

        type_name = expected_type.value if isinstance(expected_type, ExtractionType) else expected_type

        if type_name == ExtractionType.NUMBER.value:
            try:
                if re.fullmatch(r"-?\d+", str_value):
                    return int(str_value)
                return float(str_value)
            except ValueError:
                logger.debug(f"Could not convert {str_value!r} to a number")
                return None

        if type_name == ExtractionType.BOOLEAN.value:
            return bool(TRUTHY.match(str_value))

        return str_value
