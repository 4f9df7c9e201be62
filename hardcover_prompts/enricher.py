from __future__ import annotations

import logging
from typing import Optional

from .clients.page_client import PageEnrichmentSource
from .errors import HardcoverError
from .identity import IdentityResolver
from .models import Enrichment, FetchStatus
from .page_state import books_for_user, load_page_state

logger = logging.getLogger(__name__)


class AnswerEnricher:
    """
    Fills in the books one user attached to one prompt.

    Delegates to:
        PageEnrichmentSource.fetch_prompt_page(username, slug)  -> HTML
        page_state.load_page_state / books_for_user             -> BookRef list
        IdentityResolver.profile_for_username(username)         -> avatar

    Never raises: a page that cannot be fetched or understood yields an
    Enrichment with no books and the failure status, so one broken page
    cannot take down its siblings.
    """

    def __init__(
        self,
        source: PageEnrichmentSource,
        resolver: Optional[IdentityResolver] = None,
    ) -> None:
        self._source = source
        self._resolver = resolver

    def enrich(
        self, username: str, slug: str, account_id: Optional[int] = None
    ) -> Enrichment:
        try:
            html = self._source.fetch_prompt_page(username, slug)
            state = load_page_state(html)
            books = books_for_user(state, username, account_id)
        except HardcoverError as exc:
            logger.warning("Enrichment failed for @%s/%s: %s", username, slug, exc)
            return Enrichment(books=[], status=exc.status)
        except Exception:
            # A custom source outside the error taxonomy; count it as a fetch failure.
            logger.exception("Enrichment crashed for @%s/%s", username, slug)
            return Enrichment(books=[], status=FetchStatus.NETWORK_FAILURE)

        logger.debug("Enriched @%s/%s with %s books", username, slug, len(books))
        return Enrichment(
            books=books,
            avatar_url=self._avatar_for(username),
            status=FetchStatus.OK,
        )

    def _avatar_for(self, username: str) -> Optional[str]:
        if self._resolver is None:
            return None
        profile = self._resolver.profile_for_username(username)
        return profile.avatar_url if profile else None
