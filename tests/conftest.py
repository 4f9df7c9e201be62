from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Union

import pytest

from hardcover_prompts.config import EnrichmentConfig
from hardcover_prompts.enricher import AnswerEnricher
from hardcover_prompts.identity import IdentityResolver
from hardcover_prompts.orchestrator import AggregationOrchestrator
from hardcover_prompts.prompt_list import PromptListFetcher


# ---------- HTML fixtures ----------


def escape_attribute(text: str) -> str:
    """Escape JSON the way the server does for the data-page attribute."""
    return text.replace("&", "&amp;").replace('"', "&quot;").replace("'", "&#39;")


def make_prompt_page(state: Mapping[str, Any]) -> str:
    blob = escape_attribute(json.dumps(state))
    return (
        "<!DOCTYPE html><html><head><title>Prompt</title></head><body>"
        f'<div id="app" data-page="{blob}"></div>'
        "</body></html>"
    )


def make_book_entry(
    book_id: int,
    title: str,
    *,
    username: Optional[str] = None,
    image: Any = None,
    cached_image: Any = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    book: Dict[str, Any] = {"id": book_id, "title": title}
    if image is not None:
        book["image"] = image
    if cached_image is not None:
        book["cached_image"] = cached_image
    entry: Dict[str, Any] = {"book": book}
    if username is not None:
        entry["user"] = {"username": username}
    if description is not None:
        entry["description"] = description
    return entry


def make_page_state(entries: List[Dict[str, Any]], slug: str = "favorites") -> Dict[str, Any]:
    return {
        "component": "prompts/show",
        "props": {
            "prompt": {
                "slug": slug,
                "question": "What are your favorite books?",
                "answers": entries,
            }
        },
        "url": f"/@reader/prompts/{slug}",
    }


def make_prompt_row(
    answer_id: int,
    prompt_id: int,
    slug: str,
    *,
    created_at: str = "2025-09-25T09:09:04.766927+00:00",
    user_id: int = 35696,
    question: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": answer_id,
        "created_at": created_at,
        "prompt_id": prompt_id,
        "user_id": user_id,
        "prompt": {
            "id": prompt_id,
            "slug": slug,
            "question": question,
            "description": None,
        },
    }


# ---------- Fake collaborators ----------


class FakeGraphQLClient:
    """
    Stands in for HardcoverGraphQLClient, answering by operation name.
    """

    def __init__(
        self,
        *,
        rows: Optional[List[Dict[str, Any]]] = None,
        users: Optional[List[Dict[str, Any]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.rows = rows or []
        self.users = users if users is not None else [
            {"id": 35696, "username": "reader", "image": {"url": "https://img/avatar.png"}}
        ]
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def execute(self, query: str, variables: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((query, dict(variables or {})))
        for name, exc in self.errors.items():
            if name in query:
                raise exc

        if "AnsweredPrompts" in query:
            return {"prompt_answers": self.rows}
        if "UsernameById" in query:
            matches = [u for u in self.users if u["id"] == variables["id"]]
            return {"users": [{"username": u["username"]} for u in matches]}
        if "ProfileByUsername" in query:
            matches = [u for u in self.users if u["username"] == variables["username"]]
            return {"users": matches}
        if "CurrentProfile" in query:
            return {"me": self.users[:1]}
        raise AssertionError(f"Unexpected query: {query}")


class FakePageSource:
    """
    PageEnrichmentSource serving canned HTML (or raising) per slug, with
    optional per-slug latency and a record of peak concurrency.
    """

    def __init__(
        self,
        pages: Mapping[str, Union[str, Exception]],
        delays: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.pages = dict(pages)
        self.delays = dict(delays or {})
        self.requested: List[tuple] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def fetch_prompt_page(self, username: str, slug: str) -> str:
        with self._lock:
            self.requested.append((username, slug))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(slug, 0.0)
            if delay:
                time.sleep(delay)
            page = self.pages[slug]
            if isinstance(page, Exception):
                raise page
            return page
        finally:
            with self._lock:
                self.active -= 1


def build_orchestrator(
    client: FakeGraphQLClient,
    source: FakePageSource,
    *,
    max_concurrency: int = 4,
) -> AggregationOrchestrator:
    cfg = EnrichmentConfig(max_concurrency=max_concurrency, poll_interval_seconds=0.01)
    resolver = IdentityResolver(client)  # type: ignore[arg-type]
    return AggregationOrchestrator(
        resolver=resolver,
        list_fetcher=PromptListFetcher(client, enrichment_config=cfg),  # type: ignore[arg-type]
        enricher=AnswerEnricher(source, resolver=resolver),
        enrichment_config=cfg,
    )


@pytest.fixture
def page_for():
    """Build a prompt page from (book_id, title) pairs for user 'reader'."""

    def _page_for(*books: tuple) -> str:
        entries = [make_book_entry(book_id, title, username="reader") for book_id, title in books]
        return make_prompt_page(make_page_state(entries))

    return _page_for
