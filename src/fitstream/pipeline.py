"""
Fit Analysis Pipeline.

Runs one analysis end to end: validates the job description, streams the
completion under a deadline, reports progress phases as the output grows,
parses the final text into a MatchAssessment and records it in history.
Every outcome is surfaced as a PipelineEvent; nothing raises to the
caller for a failed analysis.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from datetime import UTC, datetime

from fitstream.analysis.parser import ParseContext, generate_unique_id, parse_analysis_response
from fitstream.analysis.validation import validate_job_description
from fitstream.config.models import AnalysisSettings, LLMConfig
from fitstream.models import (
    AnalysisPhase,
    ChunkUpdate,
    CompleteUpdate,
    DoneUpdate,
    ErrorUpdate,
    LLMErrorType,
    PipelineEvent,
    ProgressUpdate,
    progress_for,
)
from fitstream.storage.history import HistoryStore
from fitstream.streaming.deadline import Deadline
from fitstream.streaming.llm_client import AsyncLLMClient, LLMError, Message, user_message_for
from fitstream.streaming.phases import PhaseDetector
from fitstream.utils.logging import get_structured_logger

logger = logging.getLogger(__name__)

# Error type reported for input rejected before any request is made
VALIDATION_ERROR = "validation"

ANALYSIS_REQUEST = (
    "Please analyze this job description and provide your assessment "
    "in the JSON format specified."
)

# Returns a rejection message, or None when the input may be analyzed
Preflight = Callable[[str], Awaitable[str | None] | str | None]


def build_user_message(job_description: str) -> Message:
    """The user turn sent along with the system prompt."""
    return Message(role="user", content=f"{ANALYSIS_REQUEST}\n\n{job_description.strip()}")


class FitAnalysisPipeline:
    """Streams, parses and records one fit analysis at a time.

    Example:
        async with AsyncLLMClient() as client:
            pipeline = FitAnalysisPipeline(client, store=HistoryStore())
            async for event in pipeline.analyze(job_description, system_prompt):
                print(event.to_sse(), end="")
    """

    def __init__(
        self,
        client: AsyncLLMClient,
        store: HistoryStore | None = None,
        settings: AnalysisSettings | None = None,
        preflight: Preflight | None = None,
        llm_config: LLMConfig | None = None,
        id_generator: Callable[[], str] = generate_unique_id,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            client: Streaming completion client
            store: History store; analyses are not recorded when None
            settings: Input limits and timeout
            preflight: Content-safety check run before the request
            llm_config: Request configuration; JSON mode is used when None
            id_generator: Identifier source for parsed assessments
            clock: Timestamp source for parsed assessments
        """
        self._client = client
        self._store = store
        self._settings = settings or AnalysisSettings()
        self._preflight = preflight
        self._llm_config = llm_config or LLMConfig(
            timeout=self._settings.timeout_seconds,
            response_format="json_object",
        )
        self._id_generator = id_generator
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events = get_structured_logger(f"{__name__}.events")

    @property
    def settings(self) -> AnalysisSettings:
        return self._settings

    async def _run_preflight(self, job_description: str) -> str | None:
        if self._preflight is None:
            return None
        outcome = self._preflight(job_description)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    async def analyze(
        self,
        job_description: str,
        system_prompt: str,
        deadline: Deadline | None = None,
    ) -> AsyncIterator[PipelineEvent]:
        """Run an analysis, yielding events as it progresses.

        Args:
            job_description: Text to analyze
            system_prompt: Instruction describing the portfolio and the
                expected JSON output
            deadline: Caller-owned deadline; armed from the settings when
                not given

        Yields:
            chunk, progress, done, error and complete events
        """
        run_id = generate_unique_id()
        self._events.set_correlation_id(run_id)

        validation = validate_job_description(job_description, self._settings)
        if not validation.is_valid:
            self._events.info("Input rejected", reason=validation.error_message)
            yield ErrorUpdate(
                error_type=VALIDATION_ERROR,
                message=validation.error_message or "",
                retryable=False,
            )
            return
        if validation.warning_message:
            logger.info(validation.warning_message)

        try:
            rejection = await self._run_preflight(job_description)
        except Exception as e:
            logger.error(f"Preflight check failed: {e}")
            yield ErrorUpdate(
                error_type=LLMErrorType.SERVER.value,
                message=user_message_for(LLMErrorType.SERVER),
                retryable=True,
            )
            return
        if rejection:
            self._events.info("Input rejected by preflight check")
            yield ErrorUpdate(error_type=VALIDATION_ERROR, message=rejection, retryable=False)
            return

        detector = PhaseDetector()
        yield ProgressUpdate(progress=progress_for(detector.phase))

        deadline = deadline or Deadline(self._settings.timeout_seconds)
        self._events.info(
            "Analysis started",
            model=self._llm_config.model,
            input_chars=len(job_description),
            timeout=deadline.timeout,
        )

        stream = self._client.stream_chat_completion(
            system_prompt,
            [build_user_message(job_description)],
            config=self._llm_config,
            deadline=deadline,
        )
        try:
            async with aclosing(stream):
                async for increment in stream:
                    yield ChunkUpdate(content=increment)
                    phase = detector.update(increment)
                    if phase is not None:
                        yield ProgressUpdate(progress=progress_for(phase))
        except LLMError as e:
            self._events.error(
                "Analysis stream failed",
                error_type=e.error_type.value,
                retryable=e.retryable,
            )
            yield ErrorUpdate(error_type=e.error_type.value, message=e.message, retryable=e.retryable)
            return

        yield DoneUpdate()

        result = parse_analysis_response(
            detector.text,
            ParseContext(
                original_input=job_description,
                id_generator=self._id_generator,
                clock=self._clock,
            ),
        )
        if not result.success or result.assessment is None:
            self._events.error("Analysis response rejected", reason=result.error)
            yield ErrorUpdate(
                error_type=LLMErrorType.INVALID_RESPONSE.value,
                message=user_message_for(LLMErrorType.INVALID_RESPONSE),
                retryable=True,
            )
            return

        if detector.phase is not AnalysisPhase.FINALIZING:
            yield ProgressUpdate(progress=progress_for(AnalysisPhase.FINALIZING))

        assessment = result.assessment
        if self._store is not None and not self._store.save(assessment, job_description):
            logger.warning(f"Analysis {assessment.id} was not saved to history")

        self._events.info(
            "Analysis complete",
            assessment_id=assessment.id,
            confidence=assessment.confidence_score.value,
            alignments=len(assessment.alignment_areas),
            gaps=len(assessment.gap_areas),
        )
        yield CompleteUpdate(assessment=assessment)
