"""
Progress phase detection over partial model output.

The accumulated text is not valid JSON until the stream ends, so phases
are inferred only by looking for the quoted keys of the expected output
structure. Detection is advisory: a miss leaves the phase unchanged.
"""

from __future__ import annotations

import logging

from fitstream.models.base import AnalysisPhase

logger = logging.getLogger(__name__)

# Ordered (marker, phase) table; later entries are later in the output
PHASE_MARKERS: tuple[tuple[str, AnalysisPhase], ...] = (
    ('"confidence"', AnalysisPhase.ANALYZING),
    ('"alignments"', AnalysisPhase.FINDING_ALIGNMENTS),
    ('"gaps"', AnalysisPhase.IDENTIFYING_GAPS),
    ('"recommendation"', AnalysisPhase.GENERATING_RECOMMENDATION),
    ('"reasoning"', AnalysisPhase.FINALIZING),
)


def detect_phase(text: str, current: AnalysisPhase) -> AnalysisPhase:
    """Infer the phase reached by the accumulated text.

    Scans the whole marker table and keeps the last match. Never returns
    a phase earlier than ``current``.

    Args:
        text: Accumulated raw output so far
        current: Phase already reached

    Returns:
        The new phase, or ``current`` if nothing later was found
    """
    detected = current
    for marker, phase in PHASE_MARKERS:
        if marker in text:
            detected = phase

    if detected.rank > current.rank:
        return detected
    return current


class PhaseDetector:
    """Tracks the phase of one analysis run as increments arrive."""

    def __init__(self, initial: AnalysisPhase = AnalysisPhase.PREPARING) -> None:
        self._initial = initial
        self._phase = initial
        self._text = ""

    @property
    def phase(self) -> AnalysisPhase:
        return self._phase

    @property
    def text(self) -> str:
        """Everything seen so far."""
        return self._text

    def update(self, increment: str) -> AnalysisPhase | None:
        """Add an increment.

        Returns:
            The new phase if it advanced, otherwise None
        """
        self._text += increment
        phase = detect_phase(self._text, self._phase)
        if phase is self._phase:
            return None
        logger.debug(f"Phase advanced: {self._phase.value} -> {phase.value}")
        self._phase = phase
        return phase

    def reset(self) -> None:
        self._phase = self._initial
        self._text = ""
