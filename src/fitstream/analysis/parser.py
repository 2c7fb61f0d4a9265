"""
Analysis Response Parser.

Turns the complete, untrusted text of a model response into a validated
MatchAssessment. Document-level problems (bad confidence, missing or
malformed recommendation, non-object root) fail the whole parse;
problems inside a single alignment or gap only drop that entry.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from fitstream.models import (
    PREVIEW_LENGTH,
    AlignmentArea,
    ConfidenceLevel,
    Evidence,
    EvidenceType,
    GapArea,
    GapSeverity,
    MatchAssessment,
    Recommendation,
    RecommendationType,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Free-form confidence token -> confidence level
CONFIDENCE_MAP: dict[str, ConfidenceLevel] = {
    "strong": ConfidenceLevel.STRONG_MATCH,
    "partial": ConfidenceLevel.PARTIAL_MATCH,
    "limited": ConfidenceLevel.LIMITED_MATCH,
}

VERDICT_MAP: dict[str, RecommendationType] = {
    "proceed": RecommendationType.PROCEED,
    "consider": RecommendationType.CONSIDER,
    "reconsider": RecommendationType.RECONSIDER,
}

SEVERITY_MAP: dict[str, GapSeverity] = {s.value: s for s in GapSeverity}

# Explicit source label prefixes, checked before the keyword heuristics
EVIDENCE_PREFIXES: tuple[tuple[str, EvidenceType], ...] = (
    ("role:", EvidenceType.EXPERIENCE),
    ("position:", EvidenceType.EXPERIENCE),
    ("company:", EvidenceType.EXPERIENCE),
    ("experience:", EvidenceType.EXPERIENCE),
    ("project:", EvidenceType.PROJECT),
)

PROJECT_KEYWORDS = ("project", "built", "developed", "created")
EXPERIENCE_KEYWORDS = ("role", "position", "worked", "experience", "job", "company")

REFERENCE_MAX_LENGTH = 50

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def generate_unique_id() -> str:
    """Generate an identifier of the form "<epoch-ms>-<7 hex chars>"."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)[:7]}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ParseContext:
    """Inputs to a parse besides the response text.

    Attributes:
        original_input: The job description that was analyzed
        id_generator: Produces fresh identifiers
        clock: Produces the assessment timestamp
    """

    original_input: str
    id_generator: Callable[[], str] = generate_unique_id
    clock: Callable[[], datetime] = _utc_now


@dataclass
class ParseResult:
    """Outcome of a parse: an assessment or a failure reason."""

    success: bool
    assessment: MatchAssessment | None = None
    error: str | None = None

    @classmethod
    def ok(cls, assessment: MatchAssessment) -> ParseResult:
        return cls(success=True, assessment=assessment)

    @classmethod
    def fail(cls, error: str) -> ParseResult:
        return cls(success=False, error=error)


class AnalysisParseError(ValueError):
    """Raised by parse_analysis_response_or_raise when parsing fails."""


@dataclass
class _Counters:
    dropped_alignments: int = 0
    dropped_gaps: int = 0
    dropped_evidence: int = 0


def _text(value: Any) -> str | None:
    """Return the trimmed string, or None if not a non-empty string."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def strip_code_fences(content: str) -> str:
    """Remove a markdown code fence wrapped around a JSON document."""
    content = content.strip()
    if content.startswith("```"):
        content = re.sub(r"^```(?:json)?\s*\n?", "", content)
        content = re.sub(r"\n?```\s*$", "", content)
        content = content.strip()
    return content


def infer_evidence_type(source: str) -> EvidenceType:
    """Classify an evidence source label.

    An explicit label prefix wins; otherwise project-like keywords are
    checked before role/company-like ones. Anything else is a skill.
    """
    lowered = source.strip().lower()

    for prefix, evidence_type in EVIDENCE_PREFIXES:
        if lowered.startswith(prefix):
            return evidence_type

    if any(keyword in lowered for keyword in PROJECT_KEYWORDS):
        return EvidenceType.PROJECT
    if any(keyword in lowered for keyword in EXPERIENCE_KEYWORDS):
        return EvidenceType.EXPERIENCE
    return EvidenceType.SKILL


def generate_reference(source: str) -> str:
    """Derive a URL/key-safe slug from an evidence source label.

    Example:
        >>> generate_reference("Project: E-Commerce (2023)")
        'project-e-commerce-2023'
    """
    slug = _NON_SLUG.sub("-", source.lower()).strip("-")
    return slug[:REFERENCE_MAX_LENGTH].rstrip("-")


def generate_preview(text: str) -> str:
    """Trim the input and truncate it to the preview length."""
    trimmed = text.strip()
    if len(trimmed) <= PREVIEW_LENGTH:
        return trimmed
    return trimmed[: PREVIEW_LENGTH - 3] + "..."


def _parse_evidence(item: Any) -> Evidence | None:
    if not isinstance(item, Mapping):
        return None
    source = _text(item.get("source"))
    detail = _text(item.get("detail"))
    if source is None or detail is None:
        return None

    reference = generate_reference(source)
    if not reference:
        return None

    return Evidence(
        type=infer_evidence_type(source),
        title=source,
        reference=reference,
        excerpt=detail,
    )


def _parse_alignment(
    item: Any,
    context: ParseContext,
    counters: _Counters,
) -> AlignmentArea | None:
    if not isinstance(item, Mapping):
        return None
    title = _text(item.get("area"))
    description = _text(item.get("explanation"))
    raw_evidence = item.get("evidence")
    if title is None or description is None or not isinstance(raw_evidence, list):
        return None

    evidence = []
    for raw in raw_evidence:
        parsed = _parse_evidence(raw)
        if parsed is None:
            counters.dropped_evidence += 1
            continue
        evidence.append(parsed)

    if not evidence:
        return None

    return AlignmentArea(
        id=context.id_generator(),
        title=title,
        description=description,
        evidence=evidence,
    )


def _parse_gap(item: Any, context: ParseContext) -> GapArea | None:
    if not isinstance(item, Mapping):
        return None
    title = _text(item.get("area"))
    description = _text(item.get("explanation"))
    severity = item.get("severity")
    if title is None or description is None:
        return None
    if not isinstance(severity, str) or severity not in SEVERITY_MAP:
        return None

    return GapArea(
        id=context.id_generator(),
        title=title,
        description=description,
        severity=SEVERITY_MAP[severity],
    )


def _parse_recommendation(value: Mapping[str, Any]) -> Recommendation | str:
    verdict = value.get("verdict")
    if not isinstance(verdict, str) or verdict not in VERDICT_MAP:
        return "Invalid recommendation verdict"

    summary = _text(value.get("summary"))
    if summary is None:
        return "Recommendation summary must be a non-empty string"

    reasoning = _text(value.get("reasoning"))
    if reasoning is None:
        return "Recommendation reasoning must be a non-empty string"

    return Recommendation(type=VERDICT_MAP[verdict], summary=summary, details=reasoning)


def parse_analysis_response(text: str, context: ParseContext) -> ParseResult:
    """Parse a complete model response into a MatchAssessment.

    Never raises for malformed input; failures come back as
    ParseResult.error.

    Args:
        text: The full accumulated response text
        context: Original input and identifier/clock providers

    Returns:
        ParseResult with either an assessment or a failure reason
    """
    try:
        data = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError, RecursionError) as e:
        logger.debug(f"Response is not valid JSON: {e}")
        return ParseResult.fail("Failed to parse structured response")

    if not isinstance(data, dict):
        return ParseResult.fail("Response must be a JSON object")

    confidence = data.get("confidence")
    if not isinstance(confidence, str) or confidence not in CONFIDENCE_MAP:
        return ParseResult.fail("Invalid confidence value")

    alignments = data.get("alignments")
    if not isinstance(alignments, list):
        return ParseResult.fail("Alignments must be an array")

    gaps = data.get("gaps")
    if not isinstance(gaps, list):
        return ParseResult.fail("Gaps must be an array")

    recommendation_data = data.get("recommendation")
    if not isinstance(recommendation_data, dict):
        return ParseResult.fail("Recommendation must be an object")

    counters = _Counters()

    alignment_areas: list[AlignmentArea] = []
    for item in alignments:
        alignment = _parse_alignment(item, context, counters)
        if alignment is None:
            counters.dropped_alignments += 1
            continue
        alignment_areas.append(alignment)

    gap_areas: list[GapArea] = []
    for item in gaps:
        gap = _parse_gap(item, context)
        if gap is None:
            counters.dropped_gaps += 1
            continue
        gap_areas.append(gap)

    recommendation = _parse_recommendation(recommendation_data)
    if isinstance(recommendation, str):
        return ParseResult.fail(recommendation)

    if counters.dropped_alignments or counters.dropped_gaps or counters.dropped_evidence:
        logger.info(
            f"Dropped malformed entries: alignments={counters.dropped_alignments}, "
            f"gaps={counters.dropped_gaps}, evidence={counters.dropped_evidence}"
        )

    try:
        assessment = MatchAssessment(
            id=context.id_generator(),
            timestamp=context.clock(),
            job_description_preview=generate_preview(context.original_input),
            confidence_score=CONFIDENCE_MAP[confidence],
            alignment_areas=alignment_areas,
            gap_areas=gap_areas,
            recommendation=recommendation,
        )
    except ValidationError as e:
        logger.warning(f"Assessment failed model validation: {e.error_count()} errors")
        return ParseResult.fail("Failed to parse structured response")

    return ParseResult.ok(assessment)


def parse_analysis_response_or_raise(text: str, context: ParseContext) -> MatchAssessment:
    """Parse a model response, raising on failure.

    Raises:
        AnalysisParseError: With the failure reason
    """
    result = parse_analysis_response(text, context)
    if not result.success or result.assessment is None:
        raise AnalysisParseError(result.error or "Failed to parse analysis response")
    return result.assessment


# =============================================================================
# Structural validation
# =============================================================================


def _plain(value: Any) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    return value if isinstance(value, str) else None


def _field(data: Mapping[str, Any], camel: str, snake: str) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake)


def _is_valid_evidence(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return (
        _plain(value.get("type")) in {t.value for t in EvidenceType}
        and _text(value.get("title")) is not None
        and _text(value.get("reference")) is not None
        and _text(value.get("excerpt")) is not None
    )


def _is_valid_alignment(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    evidence = value.get("evidence")
    return (
        _text(value.get("id")) is not None
        and _text(value.get("title")) is not None
        and _text(value.get("description")) is not None
        and isinstance(evidence, list)
        and len(evidence) > 0
        and all(_is_valid_evidence(e) for e in evidence)
    )


def _is_valid_gap(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return (
        _text(value.get("id")) is not None
        and _text(value.get("title")) is not None
        and _text(value.get("description")) is not None
        and _plain(value.get("severity")) in SEVERITY_MAP
    )


def _is_valid_timestamp(value: Any) -> bool:
    if isinstance(value, datetime):
        return True
    if not isinstance(value, str):
        return False
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


def is_valid_match_assessment(value: Any) -> bool:
    """Check that a value has the structure of a MatchAssessment.

    Accepts a model instance or a plain mapping using either camelCase or
    snake_case keys, with the timestamp as a datetime or a string.
    """
    if isinstance(value, MatchAssessment):
        value = value.model_dump(mode="json", by_alias=True)
    if not isinstance(value, Mapping):
        return False

    if _text(value.get("id")) is None:
        return False

    preview = _field(value, "jobDescriptionPreview", "job_description_preview")
    if not isinstance(preview, str) or len(preview) > PREVIEW_LENGTH:
        return False

    if not _is_valid_timestamp(value.get("timestamp")):
        return False

    confidence = _field(value, "confidenceScore", "confidence_score")
    if _plain(confidence) not in {c.value for c in ConfidenceLevel}:
        return False

    alignments = _field(value, "alignmentAreas", "alignment_areas")
    gaps = _field(value, "gapAreas", "gap_areas")
    if not isinstance(alignments, list) or not isinstance(gaps, list):
        return False

    recommendation = value.get("recommendation")
    if not isinstance(recommendation, Mapping):
        return False
    if _plain(recommendation.get("type")) not in VERDICT_MAP:
        return False
    if _text(recommendation.get("summary")) is None or _text(recommendation.get("details")) is None:
        return False

    return all(_is_valid_alignment(a) for a in alignments) and all(
        _is_valid_gap(g) for g in gaps
    )
