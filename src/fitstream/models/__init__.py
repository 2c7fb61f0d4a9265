"""
Fit Analysis Pipeline - Core Data Models

This module provides Pydantic models for stream events, match assessments
and persisted history. All models support JSON serialization and have
comprehensive validation.
"""

from fitstream.models.assessment import (
    AlignmentArea,
    AnalysisHistoryItem,
    Evidence,
    GapArea,
    MatchAssessment,
    Recommendation,
    format_timestamp,
    parse_timestamp,
)
from fitstream.models.base import (
    FIT_ANALYSIS_STORAGE_KEY,
    MAX_HISTORY_ITEMS,
    PHASE_ORDER,
    PREVIEW_LENGTH,
    AnalysisPhase,
    ConfidenceLevel,
    EvidenceType,
    GapSeverity,
    LLMErrorType,
    PipelineEventType,
    RecommendationType,
    StreamEventType,
)
from fitstream.models.events import (
    ANALYSIS_PHASE_DISPLAY,
    AnalysisProgress,
    ChunkEvent,
    ChunkUpdate,
    CompleteUpdate,
    DoneEvent,
    DoneUpdate,
    ErrorEvent,
    ErrorUpdate,
    PipelineEvent,
    ProgressUpdate,
    StreamEvent,
    progress_for,
)
from fitstream.models.history import (
    HistoryRecord,
    SerializedAnalysisItem,
    StoredFitAnalysisSession,
)

__all__ = [
    # Enums and constants
    "AnalysisPhase",
    "ConfidenceLevel",
    "EvidenceType",
    "GapSeverity",
    "LLMErrorType",
    "PipelineEventType",
    "RecommendationType",
    "StreamEventType",
    "PHASE_ORDER",
    "PREVIEW_LENGTH",
    "MAX_HISTORY_ITEMS",
    "FIT_ANALYSIS_STORAGE_KEY",
    # Assessment
    "Evidence",
    "AlignmentArea",
    "GapArea",
    "Recommendation",
    "MatchAssessment",
    "AnalysisHistoryItem",
    "format_timestamp",
    "parse_timestamp",
    # Events
    "ChunkEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "AnalysisProgress",
    "ANALYSIS_PHASE_DISPLAY",
    "progress_for",
    "ChunkUpdate",
    "ProgressUpdate",
    "DoneUpdate",
    "ErrorUpdate",
    "CompleteUpdate",
    "PipelineEvent",
    # History
    "HistoryRecord",
    "SerializedAnalysisItem",
    "StoredFitAnalysisSession",
]
