from __future__ import annotations

import logging
from time import sleep
from typing import AbstractSet, Any, Callable, Dict, Mapping, Optional

import requests

from ..config import ApiConfig, HardcoverCredentials, get_config
from ..errors import CredentialMissing, DecodeFailure, NetworkFailure

logger = logging.getLogger(__name__)

# Statuses that will not improve on retry.
TERMINAL_STATUSES = frozenset({400, 401, 403, 404})


def build_session(api_config: ApiConfig) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": api_config.user_agent})
    return session


def send_with_retry(
    send: Callable[[], requests.Response],
    api_config: ApiConfig,
    what: str,
    terminal_statuses: AbstractSet[int] = TERMINAL_STATUSES,
) -> requests.Response:
    """
    Call `send` with basic retry + status handling.

    Returns the first 200 response. A status in `terminal_statuses` fails
    at once; transport errors and other statuses are retried up to
    `max_retries` times. Raises NetworkFailure when every attempt failed.
    """
    attempts = max(1, api_config.max_retries)

    for attempt in range(1, attempts + 1):
        try:
            resp = send()
        except (requests.RequestException, OSError) as exc:
            failure = NetworkFailure(f"{what} failed: {exc}")
        else:
            if resp.status_code == 200:
                return resp

            failure = NetworkFailure(
                f"Unexpected status {resp.status_code} for {what}",
                status_code=resp.status_code,
            )
            if resp.status_code in terminal_statuses:
                raise failure

        logger.debug("%s attempt %s/%s failed: %s", what, attempt, attempts, failure)
        if attempt == attempts:
            raise failure
        sleep(api_config.retry_delay_seconds)


class HardcoverGraphQLClient:
    """
    Minimal transport for the Hardcover GraphQL endpoint.

    Responsibilities:
    - Attach the bearer credential (refusing to send anything without one).
    - POST {"query", "variables"} with timeout + basic retry.
    - Unwrap the {"data": ...} envelope, surfacing GraphQL errors.

    Errors are raised as HardcoverError subclasses; callers decide how
    soft to be about them.
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

    def execute(
        self, query: str, variables: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Run one query and return its `data` object.

        Raises:
            CredentialMissing: before any request when the credential is empty.
            NetworkFailure: transport error or non-200 status after retries.
            DecodeFailure: body is not JSON, lacks `data`, or carries `errors`.
        """
        if self._credentials.is_empty:
            raise CredentialMissing("No Hardcover API key configured")

        body: Dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = dict(variables)

        resp = self._post(body)

        try:
            payload = resp.json()
        except (ValueError, RecursionError) as exc:
            # RecursionError: nesting deeper than the decoder can follow
            raise DecodeFailure(f"GraphQL response is not JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise DecodeFailure("GraphQL response is not an object")

        if payload.get("errors"):
            raise DecodeFailure(f"GraphQL errors: {payload['errors']}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise DecodeFailure("GraphQL response has no data envelope")

        return data

    # -------------------------------------------------------------------------
    # Internal: HTTP
    # -------------------------------------------------------------------------

    def _post(self, body: Dict[str, Any]) -> requests.Response:
        headers = {
            "Authorization": self._credentials.authorization_header,
            "Content-Type": "application/json",
        }
        return send_with_retry(
            lambda: self._session.post(
                self._cfg.graphql_url,
                json=body,
                headers=headers,
                timeout=self._cfg.timeout_seconds,
            ),
            self._cfg,
            "GraphQL request",
        )
