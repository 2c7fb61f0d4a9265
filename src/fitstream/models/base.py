"""
Base enumerations and constants used throughout the data models.

These enums provide type-safe values for the closed vocabularies of the
fit analysis pipeline and keep wire values consistent between the stream,
the parser and the history store.
"""

from enum import Enum


class AnalysisPhase(str, Enum):
    """Coarse progress phase of a single analysis run.

    Declaration order is the order phases are expected to appear in the
    model output; a run never moves backwards through it.
    """

    PREPARING = "preparing"
    ANALYZING = "analyzing"
    FINDING_ALIGNMENTS = "finding_alignments"
    IDENTIFYING_GAPS = "identifying_gaps"
    GENERATING_RECOMMENDATION = "generating_recommendation"
    FINALIZING = "finalizing"

    @property
    def rank(self) -> int:
        """Position of the phase in the run order."""
        return PHASE_ORDER.index(self)


PHASE_ORDER: tuple[AnalysisPhase, ...] = tuple(AnalysisPhase)


class ConfidenceLevel(str, Enum):
    """Overall fit between a job description and the portfolio."""

    STRONG_MATCH = "strong_match"  # Aligns with most key requirements
    PARTIAL_MATCH = "partial_match"  # Some alignment, notable gaps
    LIMITED_MATCH = "limited_match"  # Significant gaps


class EvidenceType(str, Enum):
    """Kind of portfolio source backing an alignment claim."""

    EXPERIENCE = "experience"
    PROJECT = "project"
    SKILL = "skill"


class GapSeverity(str, Enum):
    """How much a gap is expected to affect fit."""

    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class RecommendationType(str, Enum):
    """Verdict of an assessment."""

    PROCEED = "proceed"
    CONSIDER = "consider"
    RECONSIDER = "reconsider"


class LLMErrorType(str, Enum):
    """Classification of transport and service failures."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    RATE_LIMIT = "rate_limit"
    INVALID_RESPONSE = "invalid_response"
    API_KEY_MISSING = "api_key_missing"


class StreamEventType(str, Enum):
    """Tag of a decoded stream frame."""

    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


class PipelineEventType(str, Enum):
    """Tag of an event re-emitted to the UI boundary."""

    CHUNK = "chunk"
    PROGRESS = "progress"
    DONE = "done"
    ERROR = "error"
    COMPLETE = "complete"


# Number of characters kept in a job description preview
PREVIEW_LENGTH = 100

# Maximum number of analyses kept in history
MAX_HISTORY_ITEMS = 5

# Storage key for the fit analysis session
FIT_ANALYSIS_STORAGE_KEY = "portfolio-fit-analysis-session"
