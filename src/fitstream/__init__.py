"""
fitstream: Streaming Job Fit Analysis Pipeline.

Streams a chat completion that assesses how well a portfolio fits a job
description, reports coarse progress while the structured answer is still
incomplete, validates the final answer into a MatchAssessment and keeps a
short history of past analyses.

Example:
    from fitstream import AsyncLLMClient, FitAnalysisPipeline, HistoryStore

    async with AsyncLLMClient() as client:
        pipeline = FitAnalysisPipeline(client, store=HistoryStore())
        async for event in pipeline.analyze(job_description, system_prompt):
            ...
"""

from fitstream.pipeline import FitAnalysisPipeline
from fitstream.storage import HistoryStore
from fitstream.streaming import AsyncLLMClient, LLMError
from fitstream.version import __version__

__all__ = [
    "__version__",
    "AsyncLLMClient",
    "FitAnalysisPipeline",
    "HistoryStore",
    "LLMError",
]
