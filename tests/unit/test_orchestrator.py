from __future__ import annotations

import random
import threading
import time
from typing import List

from conftest import FakeGraphQLClient, FakePageSource, build_orchestrator, make_prompt_row
from hardcover_prompts.errors import NetworkFailure
from hardcover_prompts.models import AnswerUpdate, FetchStatus, Identity
from hardcover_prompts.orchestrator import PipelineState


def _rows(count: int) -> list:
    return [make_prompt_row(100 + i, i, f"prompt-{i}") for i in range(count)]


def test_skeletons_are_delivered_in_order_before_any_enrichment(page_for):
    slugs = [f"prompt-{i}" for i in range(5)]
    source = FakePageSource({slug: page_for((1, "Dune")) for slug in slugs})
    orchestrator = build_orchestrator(FakeGraphQLClient(rows=_rows(5)), source)
    updates: List[AnswerUpdate] = []

    result = orchestrator.run(Identity.for_account(35696), on_update=updates.append)

    phases = [u.phase for u in updates]
    assert phases[:5] == ["skeleton"] * 5
    assert phases[5:] == ["enriched"] * 5
    assert [u.index for u in updates[:5]] == [0, 1, 2, 3, 4]
    assert all(u.answer.books is None for u in updates[:5])
    assert sorted(u.index for u in updates[5:]) == [0, 1, 2, 3, 4]
    assert result.status is FetchStatus.OK
    assert orchestrator.state is PipelineState.COMPLETED


def test_random_completion_order_enriches_every_item_exactly_once(page_for):
    count = 12
    rng = random.Random(1234)
    pages = {f"prompt-{i}": page_for((i, f"Book {i}")) for i in range(count)}
    delays = {slug: rng.uniform(0.0, 0.05) for slug in pages}
    source = FakePageSource(pages, delays=delays)
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(count)), source, max_concurrency=5
    )
    enriched: List[int] = []

    def on_update(update: AnswerUpdate) -> None:
        if update.phase == "enriched":
            enriched.append(update.index)

    result = orchestrator.run(Identity.for_account(35696), on_update=on_update)

    assert len(result.answers) == count
    assert sorted(enriched) == list(range(count))
    for index, answer in enumerate(result.answers):
        # patched by position, so each answer holds its own page's book
        assert answer.summary.slug == f"prompt-{index}"
        assert [b.book_id for b in answer.books] == [index]
        assert answer.enrichment_status is FetchStatus.OK
    assert len(source.requested) == count


def test_concurrency_cap_is_respected(page_for):
    pages = {f"prompt-{i}": page_for((1, "Dune")) for i in range(8)}
    source = FakePageSource(pages, delays={slug: 0.02 for slug in pages})
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(8)), source, max_concurrency=2
    )

    orchestrator.run(Identity.for_account(35696))

    assert 1 <= source.max_active <= 2


def test_callbacks_never_overlap(page_for):
    pages = {f"prompt-{i}": page_for((1, "Dune")) for i in range(10)}
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(10)), FakePageSource(pages), max_concurrency=10
    )
    guard = threading.Lock()
    overlaps: List[int] = []

    def on_update(update: AnswerUpdate) -> None:
        if not guard.acquire(blocking=False):
            overlaps.append(update.index)
            return
        try:
            time.sleep(0.001)
        finally:
            guard.release()

    orchestrator.run(Identity.for_account(35696), on_update=on_update)

    assert overlaps == []


def test_empty_list_launches_no_enrichment():
    source = FakePageSource({})
    orchestrator = build_orchestrator(FakeGraphQLClient(rows=[]), source)
    updates: List[AnswerUpdate] = []

    result = orchestrator.run(Identity.for_account(35696), on_update=updates.append)

    assert result.answers == []
    assert result.status is FetchStatus.OK
    assert updates == []
    assert source.requested == []


def test_identity_failure_completes_with_empty_result():
    source = FakePageSource({})
    orchestrator = build_orchestrator(FakeGraphQLClient(users=[], rows=_rows(3)), source)

    result = orchestrator.run(Identity.for_account(1))

    assert result.answers == []
    assert result.status is FetchStatus.IDENTITY_UNRESOLVED
    assert orchestrator.state is PipelineState.COMPLETED
    assert source.requested == []


def test_list_failure_completes_with_empty_result():
    client = FakeGraphQLClient(errors={"AnsweredPrompts": NetworkFailure("down")})
    orchestrator = build_orchestrator(client, FakePageSource({}))

    result = orchestrator.run(Identity.for_username("reader"))

    assert result.answers == []
    assert result.status is FetchStatus.NETWORK_FAILURE
    assert result.profile is not None and result.profile.username == "reader"


def test_failed_enrichment_keeps_skeleton_and_records_status(page_for):
    pages = {"prompt-0": page_for((1, "Dune")), "prompt-1": "<html>no state</html>"}
    orchestrator = build_orchestrator(FakeGraphQLClient(rows=_rows(2)), FakePageSource(pages))

    result = orchestrator.run(Identity.for_account(35696))

    first, second = result.answers
    assert [b.title for b in first.books] == ["Dune"]
    assert first.avatar_url == "https://img/avatar.png"
    assert second.books is None
    assert second.enrichment_status is FetchStatus.EXTRACTION_FAILURE


def test_crashing_source_does_not_abort_siblings(page_for):
    pages = {"prompt-0": RuntimeError("boom"), "prompt-1": page_for((1, "Dune"))}
    orchestrator = build_orchestrator(FakeGraphQLClient(rows=_rows(2)), FakePageSource(pages))

    result = orchestrator.run(Identity.for_account(35696))

    assert result.answers[0].books is None
    assert result.answers[0].enrichment_status is FetchStatus.NETWORK_FAILURE
    assert [b.title for b in result.answers[1].books] == ["Dune"]


def test_cancellation_stops_deliveries(page_for):
    pages = {f"prompt-{i}": page_for((1, "Dune")) for i in range(6)}
    source = FakePageSource(pages, delays={slug: 0.05 for slug in pages})
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(6)), source, max_concurrency=1
    )
    cancel = threading.Event()
    updates: List[AnswerUpdate] = []

    def on_update(update: AnswerUpdate) -> None:
        updates.append(update)
        if update.phase == "enriched":
            cancel.set()

    result = orchestrator.run(
        Identity.for_account(35696), on_update=on_update, cancel_event=cancel
    )

    enriched = [u for u in updates if u.phase == "enriched"]
    assert len(enriched) == 1
    assert result.status is FetchStatus.CANCELLED
    assert len(result.answers) == 6
    assert sum(1 for a in result.answers if a.is_enriched) == 1
    assert len(source.requested) < 6


def test_cancelled_before_start_delivers_nothing(page_for):
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(2)), FakePageSource({"prompt-0": page_for(), "prompt-1": page_for()})
    )
    cancel = threading.Event()
    cancel.set()
    updates: List[AnswerUpdate] = []

    result = orchestrator.run(Identity.for_account(35696), on_update=updates.append, cancel_event=cancel)

    assert updates == []
    assert result.status is FetchStatus.CANCELLED


def test_stream_yields_skeletons_then_enrichments(page_for):
    pages = {f"prompt-{i}": page_for((i, f"Book {i}")) for i in range(3)}
    orchestrator = build_orchestrator(FakeGraphQLClient(rows=_rows(3)), FakePageSource(pages))

    updates = list(orchestrator.stream(Identity.for_account(35696)))

    assert [u.phase for u in updates] == ["skeleton"] * 3 + ["enriched"] * 3
    assert orchestrator.last_result is not None
    assert all(a.is_enriched for a in orchestrator.last_result.answers)


def test_closing_stream_early_cancels_the_run(page_for):
    pages = {f"prompt-{i}": page_for((1, "Dune")) for i in range(6)}
    source = FakePageSource(pages, delays={slug: 0.05 for slug in pages})
    orchestrator = build_orchestrator(
        FakeGraphQLClient(rows=_rows(6)), source, max_concurrency=1
    )

    stream = orchestrator.stream(Identity.for_account(35696))
    first = next(stream)
    stream.close()

    assert first.phase == "skeleton"
    assert len(source.requested) < 6
