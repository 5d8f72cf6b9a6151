"""
Validation package.

Type inference and conversion for extracted values, and the validator that
enforces structure, type and evidence exclusivity on candidates.
"""

from .type_inference import (
    TEMPLATE_TYPE_MAP,
    TypeInferencer,
)

from .result_validator import (
    RejectionReason,
    ResultValidator,
    is_valid_candidate,
)

__all__ = [
    "TEMPLATE_TYPE_MAP",
    "TypeInferencer",
    "RejectionReason",
    "ResultValidator",
    "is_valid_candidate",
]
