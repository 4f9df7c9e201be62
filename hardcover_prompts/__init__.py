"""
Answered-prompt aggregation for Hardcover accounts.

Typical use:

    from hardcover_prompts import AggregationOrchestrator, Identity

    orchestrator = AggregationOrchestrator.from_config()
    result = orchestrator.run(Identity.for_username("someone"), on_update=print)
"""

from .models import (
    AggregationResult,
    AnswerUpdate,
    BookRef,
    EnrichedAnswer,
    Enrichment,
    FetchStatus,
    Identity,
    PromptSummary,
    UserProfile,
)
from .orchestrator import AggregationOrchestrator, PipelineState

__all__ = [
    "AggregationOrchestrator",
    "AggregationResult",
    "AnswerUpdate",
    "BookRef",
    "EnrichedAnswer",
    "Enrichment",
    "FetchStatus",
    "Identity",
    "PipelineState",
    "PromptSummary",
    "UserProfile",
]
