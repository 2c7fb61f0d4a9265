"""
History persistence models.

A history record pairs a validated assessment with the full job
description it was produced from. The serialized forms below are what
the history store writes to its storage medium.
"""

from pydantic import BaseModel, ConfigDict, Field

from fitstream.models.assessment import (
    AlignmentArea,
    CamelModel,
    GapArea,
    MatchAssessment,
    Recommendation,
)
from fitstream.models.base import ConfidenceLevel


class HistoryRecord(BaseModel):
    """A retained analysis: the assessment plus its full input text."""

    model_config = ConfigDict(frozen=True)

    assessment: MatchAssessment
    job_description_full: str


class SerializedAnalysisItem(CamelModel):
    """One history entry in its transport-neutral form.

    The timestamp is kept as the fixed-format string.
    """

    id: str
    timestamp: str
    job_description_preview: str
    job_description_full: str
    confidence_score: ConfidenceLevel
    alignment_areas: list[AlignmentArea] = Field(default_factory=list)
    gap_areas: list[GapArea] = Field(default_factory=list)
    recommendation: Recommendation


class StoredFitAnalysisSession(CamelModel):
    """Everything kept under the history storage key."""

    analysis_history: list[SerializedAnalysisItem] = Field(default_factory=list)
    last_updated: str
