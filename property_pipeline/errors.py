"""
Exception types for the property extraction pipeline.

Only provider and parse failures are raised as exceptions. Candidate-level
validation failures and sentence conflicts are recorded by the
ResultValidator as RejectionReason values instead.
"""


class PropertyPipelineError(Exception):
    """Base class for pipeline errors."""


class ProviderUnavailableError(PropertyPipelineError):
    """
    The completion provider cannot be used.

    Raised when a client lacks a callable ``complete`` method, or when every
    retry of a completion call has failed.
    """

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ParseError(PropertyPipelineError):
    """Every response parsing strategy failed to produce structured data."""

    def __init__(self, message: str, raw_preview: str = ""):
        super().__init__(message)
        self.raw_preview = raw_preview
