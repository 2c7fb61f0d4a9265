"""
Analysis History Store.

Keeps the most recent analyses, most-recent-first, under one storage key.
Every operation degrades to a False/empty result when the storage medium
fails; nothing here raises to the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from fitstream.analysis.parser import is_valid_match_assessment
from fitstream.models import (
    FIT_ANALYSIS_STORAGE_KEY,
    MAX_HISTORY_ITEMS,
    AnalysisHistoryItem,
    HistoryRecord,
    MatchAssessment,
    SerializedAnalysisItem,
    StoredFitAnalysisSession,
    format_timestamp,
)
from fitstream.storage.backends import MemoryStorage, StorageBackend

logger = logging.getLogger(__name__)

PROBE_KEY = "__storage_test__"


def serialize_assessment(assessment: MatchAssessment, full_text: str) -> SerializedAnalysisItem:
    """Convert an assessment and its full input into the stored form."""
    return SerializedAnalysisItem(
        id=assessment.id,
        timestamp=format_timestamp(assessment.timestamp),
        job_description_preview=assessment.job_description_preview,
        job_description_full=full_text,
        confidence_score=assessment.confidence_score,
        alignment_areas=assessment.alignment_areas,
        gap_areas=assessment.gap_areas,
        recommendation=assessment.recommendation,
    )


def deserialize_assessment(item: SerializedAnalysisItem | Mapping[str, Any]) -> HistoryRecord:
    """Rebuild a history record from its stored form.

    Raises:
        ValidationError: If the item does not describe a valid assessment
    """
    if not isinstance(item, SerializedAnalysisItem):
        item = SerializedAnalysisItem.model_validate(item)

    assessment = MatchAssessment(
        id=item.id,
        timestamp=item.timestamp,
        job_description_preview=item.job_description_preview,
        confidence_score=item.confidence_score,
        alignment_areas=item.alignment_areas,
        gap_areas=item.gap_areas,
        recommendation=item.recommendation,
    )
    return HistoryRecord(assessment=assessment, job_description_full=item.job_description_full)


class HistoryStore:
    """Fixed-capacity, most-recent-first history of analyses.

    Example:
        store = HistoryStore(FileStorage(".fitstream"))
        store.save(assessment, job_description)
        for record in store.load():
            print(record.assessment.id)
    """

    def __init__(
        self,
        storage: StorageBackend | None = None,
        max_items: int = MAX_HISTORY_ITEMS,
        storage_key: str = FIT_ANALYSIS_STORAGE_KEY,
    ) -> None:
        """Initialize the store.

        Args:
            storage: Persistence medium (in-memory when None)
            max_items: Capacity; older entries beyond it are evicted
            storage_key: Key the whole history is kept under
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._storage = storage if storage is not None else MemoryStorage()
        self._max_items = max_items
        self._storage_key = storage_key

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    def is_available(self) -> bool:
        """Probe the medium with a throwaway write."""
        try:
            self._storage.set_item(PROBE_KEY, PROBE_KEY)
            self._storage.remove_item(PROBE_KEY)
            return True
        except Exception as e:
            logger.warning(f"History storage unavailable: {e}")
            return False

    def _read_items(self) -> list[SerializedAnalysisItem]:
        try:
            raw = self._storage.get_item(self._storage_key)
        except Exception as e:
            logger.warning(f"Failed to read history: {e}")
            return []
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError):
            logger.warning("Stored history is corrupt; treating it as empty")
            return []

        entries = data.get("analysisHistory") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            logger.warning("Stored history has no entry list; treating it as empty")
            return []

        items: list[SerializedAnalysisItem] = []
        for entry in entries:
            if not is_valid_match_assessment(entry):
                logger.warning("Skipping invalid history entry")
                continue
            try:
                items.append(SerializedAnalysisItem.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable history entry: {e.error_count()} errors")
        return items

    def save(self, assessment: MatchAssessment, full_input: str) -> bool:
        """Prepend an analysis, evicting the oldest beyond capacity.

        Returns:
            True if the history was written
        """
        if not self.is_available():
            return False

        try:
            history = [serialize_assessment(assessment, full_input), *self._read_items()]
            session = StoredFitAnalysisSession(
                analysis_history=history[: self._max_items],
                last_updated=format_timestamp(datetime.now(UTC)),
            )
            self._storage.set_item(self._storage_key, session.model_dump_json(by_alias=True))
        except Exception as e:
            logger.warning(f"Failed to save analysis {assessment.id}: {e}")
            return False

        logger.debug(f"Saved analysis {assessment.id} ({len(session.analysis_history)} in history)")
        return True

    def load(self) -> list[HistoryRecord]:
        """All retained analyses, most recent first."""
        records: list[HistoryRecord] = []
        for item in self._read_items():
            try:
                records.append(deserialize_assessment(item))
            except ValidationError as e:
                logger.warning(f"Skipping history entry {item.id}: {e.error_count()} errors")
        return records

    def load_by_id(self, assessment_id: str) -> HistoryRecord | None:
        """The analysis with the given id, or None."""
        for record in self.load():
            if record.assessment.id == assessment_id:
                return record
        return None

    def clear(self) -> bool:
        """Remove all history.

        Returns:
            True if the history was removed
        """
        try:
            self._storage.remove_item(self._storage_key)
        except Exception as e:
            logger.warning(f"Failed to clear history: {e}")
            return False
        return True

    def count(self) -> int:
        """Number of retained analyses (never more than max_items)."""
        return min(len(self._read_items()), self._max_items)

    def summaries(self) -> list[AnalysisHistoryItem]:
        """Summary rows for listing, most recent first."""
        return [AnalysisHistoryItem.from_assessment(r.assessment) for r in self.load()]
