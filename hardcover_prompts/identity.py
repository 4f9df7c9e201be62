from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from .clients.graphql_client import HardcoverGraphQLClient
from .errors import DecodeFailure, HardcoverError, IdentityUnresolved
from .models import FetchStatus, Identity, UserProfile

logger = logging.getLogger(__name__)


USERNAME_BY_ID_QUERY = """
query UsernameById($id: Int!) {
  users(where: {id: {_eq: $id}}, limit: 1) {
    username
  }
}
"""

PROFILE_BY_USERNAME_QUERY = """
query ProfileByUsername($username: citext!) {
  users(where: {username: {_eq: $username}}, limit: 1) {
    id
    username
    image {
      url
    }
  }
}
"""

CURRENT_PROFILE_QUERY = """
query CurrentProfile {
  me {
    id
    username
    image {
      url
    }
  }
}
"""


def _first_row(data: dict, key: str) -> Optional[dict]:
    rows = data.get(key)
    # `me` is a one-element list on Hardcover; accept a bare object too
    if isinstance(rows, dict):
        return rows
    if not isinstance(rows, list):
        raise DecodeFailure(f"Expected a list under '{key}'")
    if not rows:
        return None
    row = rows[0]
    if not isinstance(row, dict):
        raise DecodeFailure(f"Unexpected row shape under '{key}'")
    return row


def _profile_from_row(row: dict) -> UserProfile:
    username = row.get("username")
    if not isinstance(username, str) or not username:
        raise DecodeFailure("Profile row has no username")

    account_id: Any = row.get("id")
    if not isinstance(account_id, int):
        account_id = None

    avatar_url = None
    image = row.get("image")
    if isinstance(image, dict) and isinstance(image.get("url"), str):
        avatar_url = image["url"]

    return UserProfile(account_id=account_id, username=username, avatar_url=avatar_url)


class IdentityResolver:
    """
    Maps between numeric account ids and usernames.

    The list query filters by account id while prompt pages are addressed
    by username, so the pipeline needs both. Every lookup is soft: any
    failure is logged and surfaces as None, never as an exception.
    """

    def __init__(self, client: HardcoverGraphQLClient) -> None:
        self._client = client

    def username_for_account(self, account_id: int) -> Optional[str]:
        try:
            return self._username_for_account(account_id)
        except HardcoverError as exc:
            logger.warning("Username lookup failed for id=%s: %s", account_id, exc)
            return None

    def profile_for_username(self, username: str) -> Optional[UserProfile]:
        try:
            return self._profile_for_username(username)
        except HardcoverError as exc:
            logger.warning("Profile lookup failed for @%s: %s", username, exc)
            return None

    def current_profile(self) -> Optional[UserProfile]:
        try:
            return self._current_profile()
        except HardcoverError as exc:
            logger.warning("Current profile lookup failed: %s", exc)
            return None

    def resolve(self, identity: Identity) -> Tuple[Optional[UserProfile], FetchStatus]:
        """
        Fill in whichever half of the identity is missing.

        Returns (profile, status); profile is None whenever status is not OK.
        """
        try:
            if identity.username:
                profile = self._profile_for_username(identity.username)
                if identity.account_id is not None and profile.account_id is None:
                    profile = UserProfile(
                        account_id=identity.account_id,
                        username=profile.username,
                        avatar_url=profile.avatar_url,
                    )
                return profile, FetchStatus.OK

            if identity.account_id is not None:
                username = self._username_for_account(identity.account_id)
                return UserProfile(account_id=identity.account_id, username=username), FetchStatus.OK

            return self._current_profile(), FetchStatus.OK
        except HardcoverError as exc:
            logger.warning("Could not resolve identity %s: %s", identity, exc)
            return None, exc.status

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _username_for_account(self, account_id: int) -> str:
        data = self._client.execute(USERNAME_BY_ID_QUERY, {"id": account_id})
        row = _first_row(data, "users")
        if row is None:
            raise IdentityUnresolved(f"No user with id {account_id}")
        username = row.get("username")
        if not isinstance(username, str) or not username:
            raise DecodeFailure("User row has no username")
        return username

    def _current_profile(self) -> UserProfile:
        data = self._client.execute(CURRENT_PROFILE_QUERY)
        row = _first_row(data, "me")
        if row is None:
            raise IdentityUnresolved("Credential is not bound to a user")
        return _profile_from_row(row)

    def _profile_for_username(self, username: str) -> UserProfile:
        data = self._client.execute(PROFILE_BY_USERNAME_QUERY, {"username": username})
        row = _first_row(data, "users")
        if row is None:
            raise IdentityUnresolved(f"No user named @{username}")
        return _profile_from_row(row)
