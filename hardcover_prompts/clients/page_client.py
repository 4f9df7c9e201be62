from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable
from urllib.parse import quote

import requests

from ..config import ApiConfig, HardcoverCredentials, get_config
from ..errors import CredentialMissing
from .graphql_client import build_session, send_with_retry

_PAGE_TERMINAL_STATUSES = frozenset({401, 403, 404})


@runtime_checkable
class PageEnrichmentSource(Protocol):
    """
    Where prompt answer pages come from.

    The enricher only needs the raw HTML of one user's answer to one
    prompt. Implementations decide *how* it is fetched (live site,
    fixtures in tests, a cache, ...).
    """

    def fetch_prompt_page(self, username: str, slug: str) -> str:
        """
        Return the HTML document for /@{username}/prompts/{slug}.

        Implementations should raise CredentialMissing / NetworkFailure
        rather than returning partial content.
        """
        raise NotImplementedError


class HardcoverPageClient(PageEnrichmentSource):
    """
    Fetches server-rendered prompt pages from the Hardcover website.
    """

    def __init__(
        self,
        credentials: HardcoverCredentials,
        api_config: Optional[ApiConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._cfg = api_config or get_config().api
        self._credentials = credentials
        self._session = session or build_session(self._cfg)

    def prompt_page_url(self, username: str, slug: str) -> str:
        return (
            f"{self._cfg.site_url}/@{quote(username, safe='')}"
            f"/prompts/{quote(slug, safe='')}"
        )

    def fetch_prompt_page(self, username: str, slug: str) -> str:
        if self._credentials.is_empty:
            raise CredentialMissing("No Hardcover API key configured")
        return self._get(self.prompt_page_url(username, slug))

    # -------------------------------------------------------------------------
    # Internal: HTTP
    # -------------------------------------------------------------------------

    def _get(self, url: str) -> str:
        """
        GET with basic retry + timeout; returns HTML text on success.

        401/403/404 (private, deleted, unauthorized) are not retried.
        """
        headers = {"Authorization": self._credentials.authorization_header}
        resp = send_with_retry(
            lambda: self._session.get(
                url, headers=headers, timeout=self._cfg.timeout_seconds
            ),
            self._cfg,
            f"GET {url}",
            terminal_statuses=_PAGE_TERMINAL_STATUSES,
        )
        return resp.text
