"""Aggregation of answered prompts with progressive enrichment.

One run walks a fixed sequence of states::

    RESOLVING_IDENTITY -> LISTING -> EMITTING_SKELETONS -> ENRICHING -> COMPLETED

A failed identity resolution or list fetch jumps straight to COMPLETED
with an empty, status-tagged result.

Consumers get updates either through a callback passed to ``run`` or by
iterating ``stream``. Every item is delivered once as a skeleton, in list
order, before any enrichment starts; after that each item is delivered
once more when its enrichment finishes, in completion order.

Enrichments run on a bounded thread pool. Tasks never touch the result
list: they return an ``Enrichment`` and the calling thread, acting as the
single collector, patches the item by its index and delivers it while
holding the delivery lock.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Dict, Iterator, List, Literal, Optional

from .clients.graphql_client import HardcoverGraphQLClient, build_session
from .clients.page_client import HardcoverPageClient
from .config import AppConfig, EnrichmentConfig, HardcoverCredentials, get_config
from .enricher import AnswerEnricher
from .identity import IdentityResolver
from .models import (
    AggregationResult,
    AnswerUpdate,
    EnrichedAnswer,
    Enrichment,
    FetchStatus,
    Identity,
    UserProfile,
)
from .prompt_list import PromptListFetcher

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[AnswerUpdate], None]


class PipelineState(str, Enum):
    RESOLVING_IDENTITY = "resolving_identity"
    LISTING = "listing"
    EMITTING_SKELETONS = "emitting_skeletons"
    ENRICHING = "enriching"
    COMPLETED = "completed"


_STREAM_DONE = object()


class AggregationOrchestrator:
    """
    Runs identity -> list -> skeletons -> concurrent enrichment.

    One orchestrator runs one aggregation at a time; `state` and
    `last_result` describe the most recent run.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        list_fetcher: PromptListFetcher,
        enricher: AnswerEnricher,
        enrichment_config: Optional[EnrichmentConfig] = None,
    ) -> None:
        self._resolver = resolver
        self._list_fetcher = list_fetcher
        self._enricher = enricher
        self._cfg = enrichment_config or get_config().enrichment
        self._delivery_lock = threading.Lock()

        self.state: Optional[PipelineState] = None
        self.last_result: Optional[AggregationResult] = None

    @classmethod
    def from_config(
        cls,
        credentials: Optional[HardcoverCredentials] = None,
        cfg: Optional[AppConfig] = None,
    ) -> "AggregationOrchestrator":
        """
        Wire the live Hardcover clients around one shared HTTP session.
        """
        cfg = cfg or get_config()
        credentials = credentials or HardcoverCredentials.from_env()
        session = build_session(cfg.api)

        graphql = HardcoverGraphQLClient(credentials, api_config=cfg.api, session=session)
        pages = HardcoverPageClient(credentials, api_config=cfg.api, session=session)
        resolver = IdentityResolver(graphql)

        return cls(
            resolver=resolver,
            list_fetcher=PromptListFetcher(graphql, enrichment_config=cfg.enrichment),
            enricher=AnswerEnricher(pages, resolver=resolver),
            enrichment_config=cfg.enrichment,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(
        self,
        identity: Identity,
        on_update: Optional[UpdateCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AggregationResult:
        """
        Aggregate answered prompts for `identity`.

        on_update:
            Called once per skeleton and once per finished enrichment.
            Calls never overlap. No calls happen after cancellation.
        cancel_event:
            Set it to abandon the run. Pending enrichments are cancelled,
            the partial result comes back with status CANCELLED.
        """
        cancel_event = cancel_event or threading.Event()

        self._set_state(PipelineState.RESOLVING_IDENTITY)
        profile, status = self._resolver.resolve(identity)
        if profile is None:
            return self._complete(AggregationResult(status=status))
        if cancel_event.is_set():
            return self._complete(
                AggregationResult(status=FetchStatus.CANCELLED, profile=profile)
            )

        self._set_state(PipelineState.LISTING)
        listing = self._list_fetcher.fetch(profile)
        if not listing.status.ok:
            return self._complete(AggregationResult(status=listing.status, profile=profile))

        result = AggregationResult(
            answers=[EnrichedAnswer(summary=item) for item in listing.items],
            status=FetchStatus.OK,
            profile=profile,
        )
        if cancel_event.is_set():
            result.status = FetchStatus.CANCELLED
            return self._complete(result)

        self._set_state(PipelineState.EMITTING_SKELETONS)
        with self._delivery_lock:
            for index, answer in enumerate(result.answers):
                if cancel_event.is_set():
                    result.status = FetchStatus.CANCELLED
                    return self._complete(result)
                self._deliver(on_update, index, "skeleton", answer)

        if result.answers:
            self._set_state(PipelineState.ENRICHING)
            finished = self._enrich_all(profile, result.answers, on_update, cancel_event)
            if not finished:
                result.status = FetchStatus.CANCELLED

        return self._complete(result)

    def stream(self, identity: Identity) -> Iterator[AnswerUpdate]:
        """
        Iterate updates as they arrive instead of passing a callback.

        The run happens on a background thread that feeds a queue; closing
        the iterator early cancels the run. Once the iterator is exhausted
        the final result is in `last_result`.
        """
        updates: "queue.Queue[object]" = queue.Queue()
        cancel_event = threading.Event()
        errors: List[BaseException] = []

        def _worker() -> None:
            try:
                self.run(identity, on_update=updates.put, cancel_event=cancel_event)
            except BaseException as exc:  # handed to the consuming thread below
                errors.append(exc)
            finally:
                updates.put(_STREAM_DONE)

        thread = threading.Thread(target=_worker, name="prompt-aggregation", daemon=True)
        thread.start()

        finished = False
        try:
            while True:
                item = updates.get()
                if item is _STREAM_DONE:
                    finished = True
                    break
                yield item
        finally:
            if finished:
                thread.join()
            else:
                cancel_event.set()

        if errors:
            raise errors[0]

    # -------------------------------------------------------------------------
    # Internal: enrichment fan-out
    # -------------------------------------------------------------------------

    def _enrich_all(
        self,
        profile: UserProfile,
        answers: List[EnrichedAnswer],
        on_update: Optional[UpdateCallback],
        cancel_event: threading.Event,
    ) -> bool:
        """
        Fan out one enrichment per answer and apply results as they land.

        Returns False if the run was cancelled before every task finished.
        """
        workers = max(1, min(self._cfg.max_concurrency, len(answers)))
        executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="prompt-enrich"
        )
        logger.info(
            "Enriching %s answers for @%s (workers=%s)",
            len(answers),
            profile.username,
            workers,
        )

        try:
            # Tag each task with its position, not its prompt id.
            tasks: Dict[Future, int] = {
                executor.submit(
                    self._enricher.enrich,
                    profile.username,
                    answer.summary.slug,
                    profile.account_id,
                ): index
                for index, answer in enumerate(answers)
            }
            pending = set(tasks)

            while pending:
                if cancel_event.is_set():
                    logger.info("Enrichment cancelled with %s tasks pending", len(pending))
                    return False

                done, pending = wait(
                    pending,
                    timeout=self._cfg.poll_interval_seconds,
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    index = tasks[future]
                    enrichment = future.result()
                    with self._delivery_lock:
                        if cancel_event.is_set():
                            return False
                        self._apply(answers[index], enrichment)
                        self._deliver(on_update, index, "enriched", answers[index])

            return True
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _apply(answer: EnrichedAnswer, enrichment: Enrichment) -> None:
        """
        Patch one answer in place. books only ever goes None -> list.
        """
        answer.enrichment_status = enrichment.status
        if not enrichment.status.ok:
            return
        if answer.books is None:
            answer.books = list(enrichment.books)
        if enrichment.avatar_url:
            answer.avatar_url = enrichment.avatar_url

    # -------------------------------------------------------------------------
    # Internal: small helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _deliver(
        on_update: Optional[UpdateCallback],
        index: int,
        phase: Literal["skeleton", "enriched"],
        answer: EnrichedAnswer,
    ) -> None:
        if on_update is None:
            return
        on_update(AnswerUpdate(index=index, phase=phase, answer=answer.snapshot()))

    def _set_state(self, state: PipelineState) -> None:
        logger.debug("Aggregation state -> %s", state.value)
        self.state = state

    def _complete(self, result: AggregationResult) -> AggregationResult:
        self._set_state(PipelineState.COMPLETED)
        self.last_result = result
        logger.info(
            "Aggregation completed: status=%s answers=%s enriched=%s",
            result.status.value,
            len(result.answers),
            sum(1 for answer in result.answers if answer.is_enriched),
        )
        return result
