"""Error kinds raised along the capture -> inference round-trip.

The session controller converts every one of these into UI-visible state.
A degraded (heuristic) parse is not an error; see ``NormalizationResult.estimated``.
"""

from typing import Optional


class CarbEstimatorError(Exception):
    """Base class for all errors raised by carb_estimator."""


class CredentialMissingError(CarbEstimatorError):
    """No API key is available for the inference service."""

    def __init__(self, message: str = "An OpenAI API key is required") -> None:
        super().__init__(message)


class InvalidInputError(CarbEstimatorError):
    """The selected file is not an image."""


class ImageProcessingError(CarbEstimatorError):
    """The image could not be decoded or re-encoded."""


class ServiceError(CarbEstimatorError):
    """The inference service answered with a non-success status."""

    def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
        self.status_code = status_code
        self.detail = detail
        message = f"API error: {status_code}"
        if detail:
            message += f" - {detail}"
        super().__init__(message)


class UnknownAnalysisError(CarbEstimatorError):
    """Any other failure during the inference round-trip."""


class ResponseParseError(CarbEstimatorError):
    """Model text could not be parsed into a nutrition record."""
