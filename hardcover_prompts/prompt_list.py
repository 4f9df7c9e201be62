from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .clients.graphql_client import HardcoverGraphQLClient
from .config import EnrichmentConfig, get_config
from .errors import DecodeFailure, HardcoverError
from .models import FetchStatus, PromptListResult, PromptSummary, UserProfile

logger = logging.getLogger(__name__)


_PROMPT_ANSWER_FIELDS = """
    id
    created_at
    prompt_id
    user_id
    prompt {
      id
      slug
      question
      description
    }
"""

PROMPT_ANSWERS_BY_ACCOUNT_QUERY = (
    """
query AnsweredPromptsByAccount($userId: Int!, $limit: Int!) {
  prompt_answers(
    where: {user_id: {_eq: $userId}}
    order_by: {created_at: desc}
    limit: $limit
  ) {"""
    + _PROMPT_ANSWER_FIELDS
    + """  }
}
"""
)

PROMPT_ANSWERS_BY_USERNAME_QUERY = (
    """
query AnsweredPromptsByUsername($username: citext!, $limit: Int!) {
  prompt_answers(
    where: {user: {username: {_eq: $username}}}
    order_by: {created_at: desc}
    limit: $limit
  ) {"""
    + _PROMPT_ANSWER_FIELDS
    + """  }
}
"""
)


def dedupe_by_prompt_id(items: Iterable[PromptSummary]) -> List[PromptSummary]:
    """
    Keep the first row seen for each prompt id, in source order.

    The source returns one row per attached book, so duplicates are
    expected; later rows are dropped without merging their payload.
    """
    seen: Set[int] = set()
    unique: List[PromptSummary] = []
    for item in items:
        if item.prompt_id in seen:
            continue
        seen.add(item.prompt_id)
        unique.append(item)
    return unique


def _optional_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_prompt_row(row: Any) -> PromptSummary:
    """
    Decode one prompt_answers row.

    Raises DecodeFailure when a required field is missing or mistyped.
    """
    if not isinstance(row, dict):
        raise DecodeFailure("Prompt answer row is not an object")

    prompt = row.get("prompt")
    if not isinstance(prompt, dict):
        raise DecodeFailure(f"Prompt answer {row.get('id')} has no prompt object")

    answer_id = row.get("id")
    created_at = row.get("created_at")
    prompt_id = row.get("prompt_id", prompt.get("id"))
    slug = prompt.get("slug")

    if not isinstance(answer_id, int) or isinstance(answer_id, bool):
        raise DecodeFailure("Prompt answer row has no integer id")
    if not isinstance(created_at, str):
        raise DecodeFailure(f"Prompt answer {answer_id} has no created_at")
    if not isinstance(prompt_id, int) or isinstance(prompt_id, bool):
        raise DecodeFailure(f"Prompt answer {answer_id} has no prompt id")
    if not isinstance(slug, str) or not slug:
        raise DecodeFailure(f"Prompt answer {answer_id} has no prompt slug")

    account_id = row.get("user_id")
    return PromptSummary(
        answer_id=answer_id,
        created_at=created_at,
        prompt_id=prompt_id,
        slug=slug,
        account_id=account_id if isinstance(account_id, int) else None,
        question=_optional_text(prompt.get("question")),
        description=_optional_text(prompt.get("description")),
    )


def parse_prompt_rows(data: Dict[str, Any]) -> List[PromptSummary]:
    rows = data.get("prompt_answers")
    if not isinstance(rows, list):
        raise DecodeFailure("Response has no prompt_answers list")
    return [parse_prompt_row(row) for row in rows]


class PromptListFetcher:
    """
    Retrieves a user's answered prompts, newest first, one per prompt.

    This is a soft-fail boundary: network, authorization and decode
    problems come back as an empty list tagged with a non-OK status.
    """

    def __init__(
        self,
        client: HardcoverGraphQLClient,
        enrichment_config: Optional[EnrichmentConfig] = None,
    ) -> None:
        self._client = client
        self._cfg = enrichment_config or get_config().enrichment

    def fetch(self, profile: UserProfile) -> PromptListResult:
        try:
            rows = self._fetch_rows(profile)
        except HardcoverError as exc:
            logger.warning("Prompt list fetch failed for @%s: %s", profile.username, exc)
            return PromptListResult(items=[], status=exc.status)

        items = dedupe_by_prompt_id(rows)
        logger.info(
            "Prompt list for @%s: raw_rows=%s unique_prompts=%s",
            profile.username,
            len(rows),
            len(items),
        )
        return PromptListResult(items=items, status=FetchStatus.OK)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _fetch_rows(self, profile: UserProfile) -> Sequence[PromptSummary]:
        if profile.account_id is not None:
            data = self._client.execute(
                PROMPT_ANSWERS_BY_ACCOUNT_QUERY,
                {"userId": profile.account_id, "limit": self._cfg.list_limit},
            )
        else:
            data = self._client.execute(
                PROMPT_ANSWERS_BY_USERNAME_QUERY,
                {"username": profile.username, "limit": self._cfg.list_limit},
            )
        return parse_prompt_rows(data)
