from __future__ import annotations

"""
Client package for the Hardcover data sources.

This package exposes:
- HardcoverGraphQLClient: authenticated transport for the GraphQL API
  (answered-prompt lists, username and profile lookups).
- PageEnrichmentSource: minimal protocol for fetching one prompt answer page.
- HardcoverPageClient: live-site implementation of PageEnrichmentSource.
"""

from .graphql_client import HardcoverGraphQLClient, build_session, send_with_retry
from .page_client import HardcoverPageClient, PageEnrichmentSource

__all__ = [
    "HardcoverGraphQLClient",
    "HardcoverPageClient",
    "PageEnrichmentSource",
    "build_session",
    "send_with_retry",
]
