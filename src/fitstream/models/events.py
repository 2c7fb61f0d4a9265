"""
Event models for the streaming pipeline.

Two families live here:

- StreamEvent: records produced by the frame decoder from a raw
  event-stream body (chunk, done, error). Ephemeral, never persisted.
- PipelineEvent: records re-emitted to the caller's UI boundary
  (chunk, progress, done, error, complete). Each can be encoded as one
  server-sent event data line.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from fitstream.models.assessment import CamelModel, MatchAssessment
from fitstream.models.base import AnalysisPhase

# =============================================================================
# Decoded stream frames
# =============================================================================


class ChunkEvent(BaseModel):
    """An incremental text fragment."""

    model_config = ConfigDict(frozen=True)

    type: Literal["chunk"] = "chunk"
    content: str = ""


class DoneEvent(BaseModel):
    """End of stream marker."""

    model_config = ConfigDict(frozen=True)

    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    """An in-band error reported by the stream producer."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str = ""


StreamEvent = Annotated[
    Union[ChunkEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


# =============================================================================
# Progress
# =============================================================================


class AnalysisProgress(CamelModel):
    """Progress update sent during a streaming analysis."""

    phase: AnalysisPhase
    message: str
    percent: int = Field(ge=0, le=100)


ANALYSIS_PHASE_DISPLAY: dict[AnalysisPhase, tuple[str, int]] = {
    AnalysisPhase.PREPARING: ("Preparing analysis...", 5),
    AnalysisPhase.ANALYZING: ("Analyzing fit...", 20),
    AnalysisPhase.FINDING_ALIGNMENTS: ("Finding alignments...", 40),
    AnalysisPhase.IDENTIFYING_GAPS: ("Identifying gaps...", 60),
    AnalysisPhase.GENERATING_RECOMMENDATION: ("Generating recommendation...", 80),
    AnalysisPhase.FINALIZING: ("Finalizing results...", 95),
}


def progress_for(phase: AnalysisPhase) -> AnalysisProgress:
    """Build the display progress record for a phase."""
    message, percent = ANALYSIS_PHASE_DISPLAY[phase]
    return AnalysisProgress(phase=phase, message=message, percent=percent)


# =============================================================================
# Pipeline (UI boundary) events
# =============================================================================


class _PipelineEventBase(CamelModel):
    def to_sse(self) -> str:
        """Encode as a single server-sent event."""
        payload = self.model_dump(mode="json", by_alias=True)
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class ChunkUpdate(_PipelineEventBase):
    type: Literal["chunk"] = "chunk"
    content: str


class ProgressUpdate(_PipelineEventBase):
    type: Literal["progress"] = "progress"
    progress: AnalysisProgress


class DoneUpdate(_PipelineEventBase):
    type: Literal["done"] = "done"


class ErrorUpdate(_PipelineEventBase):
    """A failure surfaced to the caller.

    Attributes:
        error_type: LLM error type, or "validation" for rejected input
        message: Caller-safe message
        retryable: Whether offering a retry makes sense
    """

    type: Literal["error"] = "error"
    error_type: str
    message: str
    retryable: bool = False


class CompleteUpdate(_PipelineEventBase):
    type: Literal["complete"] = "complete"
    assessment: MatchAssessment


PipelineEvent = Annotated[
    Union[ChunkUpdate, ProgressUpdate, DoneUpdate, ErrorUpdate, CompleteUpdate],
    Field(discriminator="type"),
]
