"""
Fit Analysis Pipeline - Response Analysis

Input validation before a request, and parsing/validation of the
completed model response into a MatchAssessment.
"""

from fitstream.analysis.parser import (
    CONFIDENCE_MAP,
    VERDICT_MAP,
    AnalysisParseError,
    ParseContext,
    ParseResult,
    generate_preview,
    generate_reference,
    generate_unique_id,
    infer_evidence_type,
    is_valid_match_assessment,
    parse_analysis_response,
    parse_analysis_response_or_raise,
    strip_code_fences,
)
from fitstream.analysis.validation import (
    EMPTY_INPUT_MESSAGE,
    SHORT_INPUT_WARNING,
    InputValidation,
    validate_job_description,
)

__all__ = [
    # Parser
    "ParseContext",
    "ParseResult",
    "AnalysisParseError",
    "parse_analysis_response",
    "parse_analysis_response_or_raise",
    "is_valid_match_assessment",
    "generate_unique_id",
    "generate_preview",
    "generate_reference",
    "infer_evidence_type",
    "strip_code_fences",
    "CONFIDENCE_MAP",
    "VERDICT_MAP",
    # Input validation
    "InputValidation",
    "validate_job_description",
    "EMPTY_INPUT_MESSAGE",
    "SHORT_INPUT_WARNING",
]
