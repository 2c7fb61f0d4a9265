"""
Job description input validation.

Runs before any request is opened: rejects empty and oversized input and
warns about input that is probably too short to analyze well.
"""

from dataclasses import dataclass

from fitstream.config.models import AnalysisSettings

EMPTY_INPUT_MESSAGE = "Please enter a job description to analyze."
SHORT_INPUT_WARNING = "Adding more detail may improve analysis quality."


def too_long_message(max_length: int) -> str:
    return f"Job description exceeds maximum length of {max_length:,} characters."


@dataclass(frozen=True)
class InputValidation:
    """Result of validating a job description.

    Attributes:
        is_valid: Whether the input may be analyzed
        error_message: Reason the input was rejected
        warning_message: Advisory note for valid input
    """

    is_valid: bool
    error_message: str | None = None
    warning_message: str | None = None


def validate_job_description(
    text: str,
    settings: AnalysisSettings | None = None,
) -> InputValidation:
    """Validate a job description before analysis.

    Lengths are measured on the trimmed text.

    Args:
        text: Raw job description
        settings: Length limits (defaults apply when None)

    Returns:
        InputValidation
    """
    settings = settings or AnalysisSettings()
    trimmed = text.strip()

    if not trimmed:
        return InputValidation(is_valid=False, error_message=EMPTY_INPUT_MESSAGE)

    if len(trimmed) > settings.max_input_length:
        return InputValidation(
            is_valid=False,
            error_message=too_long_message(settings.max_input_length),
        )

    if len(trimmed) < settings.min_length_warning:
        return InputValidation(is_valid=True, warning_message=SHORT_INPUT_WARNING)

    return InputValidation(is_valid=True)
