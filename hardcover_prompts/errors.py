"""Failure taxonomy for the prompt aggregation pipeline.

These exceptions are raised inside clients and parsers and caught at the
boundary of IdentityResolver, PromptListFetcher and AnswerEnricher, where
each one is turned into an empty result tagged with ``error.status``.
"""

from __future__ import annotations

from typing import Optional

from .models import FetchStatus


class HardcoverError(Exception):
    """Base class for every pipeline failure."""

    status: FetchStatus = FetchStatus.NETWORK_FAILURE


class CredentialMissing(HardcoverError):
    """No API credential is configured; no request was issued."""

    status = FetchStatus.CREDENTIAL_MISSING


class NetworkFailure(HardcoverError):
    """Transport error or unexpected HTTP status."""

    status = FetchStatus.NETWORK_FAILURE

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeFailure(HardcoverError):
    """Response body is not valid JSON or has an unexpected shape."""

    status = FetchStatus.DECODE_FAILURE


class ExtractionFailure(HardcoverError):
    """Embedded page-state marker absent, or the brace scan never balances."""

    status = FetchStatus.EXTRACTION_FAILURE


class SchemaFailure(HardcoverError):
    """JSON parsed, but an expected path segment or field is missing."""

    status = FetchStatus.SCHEMA_FAILURE


class IdentityUnresolved(HardcoverError):
    """Account id or username could not be mapped to a profile."""

    status = FetchStatus.IDENTITY_UNRESOLVED
