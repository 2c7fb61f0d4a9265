"""
Match assessment models produced by the analysis parser.

These models define the validated, strongly-typed result of one fit
analysis: confidence, alignment areas with evidence, gap areas and a
single recommendation. Field names serialize in camelCase to match the
persisted history format; Python code uses the snake_case attributes.
"""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from fitstream.models.base import (
    PREVIEW_LENGTH,
    ConfidenceLevel,
    EvidenceType,
    GapSeverity,
    RecommendationType,
)

# Fixed textual timestamp format used wherever a timestamp leaves memory
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must be a non-empty string")
    return value


NonEmptyStr = Annotated[str, AfterValidator(_require_text)]


def format_timestamp(value: datetime) -> str:
    """Format a datetime in the fixed UTC textual form.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp string back into an aware UTC datetime.

    Accepts the fixed format and, as a fallback, any ISO 8601 string
    (for example one written with millisecond precision).

    Raises:
        ValueError: If the string is not a recognizable timestamp
    """
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class CamelModel(BaseModel):
    """Base model serializing field names in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Evidence(CamelModel):
    """A single cited fact supporting an alignment claim.

    Attributes:
        type: Kind of source (experience, project, skill)
        title: Source label as given by the model
        reference: URL/key-safe slug derived from the source label
        excerpt: Relevant detail from the source
    """

    type: EvidenceType = Field(..., description="Type of evidence source")
    title: NonEmptyStr = Field(..., description="Evidence title")
    reference: NonEmptyStr = Field(..., description="Normalized source slug")
    excerpt: NonEmptyStr = Field(..., description="Relevant detail")


class AlignmentArea(CamelModel):
    """An area where the portfolio matches a job requirement.

    An alignment always carries at least one evidence item.
    """

    id: NonEmptyStr = Field(..., description="Unique identifier")
    title: NonEmptyStr = Field(..., description="Skill or requirement")
    description: NonEmptyStr = Field(..., description="Why this aligns")
    evidence: list[Evidence] = Field(
        ...,
        min_length=1,
        description="Supporting evidence, in the order cited",
    )


class GapArea(CamelModel):
    """An area where documented experience is limited or absent."""

    id: NonEmptyStr = Field(..., description="Unique identifier")
    title: NonEmptyStr = Field(..., description="Requirement with a gap")
    description: NonEmptyStr = Field(..., description="Gap explanation")
    severity: GapSeverity = Field(..., description="Gap severity")


class Recommendation(CamelModel):
    """The single verdict of an assessment."""

    type: RecommendationType = Field(..., description="Verdict")
    summary: NonEmptyStr = Field(..., description="One-sentence summary")
    details: NonEmptyStr = Field(..., description="Reasoning behind the verdict")


class MatchAssessment(CamelModel):
    """Complete, validated result of one fit analysis.

    Created once at the end of a successful parse and immutable afterwards.

    Attributes:
        id: Unique identifier for this assessment
        timestamp: When the analysis was performed (aware, UTC)
        job_description_preview: Trimmed job description, at most 100 chars
        confidence_score: Overall confidence level
        alignment_areas: Areas of alignment (may be empty)
        gap_areas: Areas with gaps (may be empty)
        recommendation: The verdict
    """

    id: NonEmptyStr = Field(..., description="Unique identifier")
    timestamp: datetime = Field(..., description="When the analysis ran")
    job_description_preview: str = Field(
        ...,
        max_length=PREVIEW_LENGTH,
        description="Job description preview",
    )
    confidence_score: ConfidenceLevel = Field(..., description="Overall confidence")
    alignment_areas: list[AlignmentArea] = Field(default_factory=list)
    gap_areas: list[GapArea] = Field(default_factory=list)
    recommendation: Recommendation = Field(..., description="Verdict")

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: object) -> object:
        """Accept serialized timestamps and normalize to aware UTC."""
        if isinstance(v, str):
            return parse_timestamp(v)
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=UTC)
            return v.astimezone(UTC)
        return v

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


class AnalysisHistoryItem(CamelModel):
    """Summary row for a history listing."""

    id: str
    timestamp: datetime
    job_description_preview: str
    confidence_score: ConfidenceLevel

    @classmethod
    def from_assessment(cls, assessment: MatchAssessment) -> "AnalysisHistoryItem":
        return cls(
            id=assessment.id,
            timestamp=assessment.timestamp,
            job_description_preview=assessment.job_description_preview,
            confidence_score=assessment.confidence_score,
        )
