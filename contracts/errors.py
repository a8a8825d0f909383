"""Exception taxonomy for the flow verification engine.

These never escape the public entry points; the orchestrator turns each of
them into a finding inside the FlowReport.
"""

from typing import Optional


class FlowVerificationError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, file_path: Optional[str] = None, line_number: int = 0):
        super().__init__(message)
        self.message = message
        self.file_path = file_path
        self.line_number = line_number


class DiscoveryError(FlowVerificationError):
    """Module root is missing or cannot be listed. Fatal for the run."""


class ExtractionError(FlowVerificationError):
    """A file could not be turned into contracts. Recovered per file."""


class ComparisonError(FlowVerificationError):
    """A producer/consumer pair could not be compared. Downgraded to a warning."""
