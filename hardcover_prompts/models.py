from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Literal, Optional, Union


class FetchStatus(str, Enum):
    """
    Outcome tag carried next to every soft-failing result, so callers can
    tell "legitimately nothing" (OK with no items) from "fetch failed".
    """

    OK = "ok"
    CREDENTIAL_MISSING = "credential_missing"
    NETWORK_FAILURE = "network_failure"
    DECODE_FAILURE = "decode_failure"
    EXTRACTION_FAILURE = "extraction_failure"
    SCHEMA_FAILURE = "schema_failure"
    IDENTITY_UNRESOLVED = "identity_unresolved"
    CANCELLED = "cancelled"

    @property
    def ok(self) -> bool:
        return self is FetchStatus.OK


@dataclass(frozen=True)
class Identity:
    """
    Who we aggregate prompts for.

    Either half may be known up front; the other is filled in by
    IdentityResolver. With neither set, the account owning the
    credential is used.
    """

    account_id: int | None = None
    username: str | None = None

    @classmethod
    def for_account(cls, account_id: int) -> "Identity":
        return cls(account_id=account_id)

    @classmethod
    def for_username(cls, username: str) -> "Identity":
        name = username.strip().lstrip("@")
        if not name:
            raise ValueError("username must not be empty")
        return cls(username=name)

    @classmethod
    def current(cls) -> "Identity":
        return cls()

    @property
    def is_current_user(self) -> bool:
        return self.account_id is None and not self.username


@dataclass(frozen=True)
class UserProfile:
    account_id: int | None
    username: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class PromptSummary:
    """
    One row of the answered-prompts list.

    prompt_id is the deduplication key; answer_id is not unique per prompt
    (the source returns one row per attached book).
    """

    answer_id: int
    created_at: str  # ISO-8601 as returned by the API
    prompt_id: int
    slug: str
    account_id: int | None = None
    question: str | None = None
    description: str | None = None

    @property
    def title(self) -> str:
        if self.question:
            return self.question
        return self.slug.replace("-", " ").title()


# ---------- Image references ----------


@dataclass(frozen=True)
class StringImage:
    """Image field given as a plain URL string."""

    url: str


@dataclass(frozen=True)
class ObjectImage:
    """Image field given as an object carrying a nested URL."""

    url: str | None


ImageRef = Union[StringImage, ObjectImage]


def parse_image_field(raw: Any) -> Optional[ImageRef]:
    """
    Decode the polymorphic image JSON field into its tagged form.

    Anything that is neither a string nor an object is treated as absent.
    """
    if isinstance(raw, str):
        return StringImage(url=raw)
    if isinstance(raw, dict):
        url = raw.get("url")
        return ObjectImage(url=url if isinstance(url, str) else None)
    return None


def image_url(ref: Optional[ImageRef]) -> Optional[str]:
    if ref is None or not ref.url:
        return None
    return ref.url


def resolve_image_url(cached_image: Any, image: Any) -> Optional[str]:
    """
    Single display URL for a book: cached image first, then the image field.
    """
    return image_url(parse_image_field(cached_image)) or image_url(
        parse_image_field(image)
    )


@dataclass(frozen=True)
class BookRef:
    book_id: int
    title: str
    image: str | None = None
    description: str | None = None  # the user's note on why they picked it


# ---------- Results ----------


@dataclass
class PromptListResult:
    items: List[PromptSummary] = field(default_factory=list)
    status: FetchStatus = FetchStatus.OK


@dataclass
class Enrichment:
    """
    Outcome of enriching one answer. books is always a list; it is empty
    when nothing was found or when status is not OK.
    """

    books: List[BookRef] = field(default_factory=list)
    avatar_url: str | None = None
    status: FetchStatus = FetchStatus.OK


@dataclass
class EnrichedAnswer:
    """
    A prompt answer plus the books the user attached to it.

    books stays None until an enrichment succeeds, then becomes a list
    (possibly empty) and never goes back to None.
    """

    summary: PromptSummary
    books: Optional[List[BookRef]] = None
    avatar_url: str | None = None
    enrichment_status: FetchStatus | None = None

    @property
    def is_enriched(self) -> bool:
        return self.books is not None

    def snapshot(self) -> "EnrichedAnswer":
        books = list(self.books) if self.books is not None else None
        return replace(self, books=books)


@dataclass(frozen=True)
class AnswerUpdate:
    """
    One delivery to the consumer: the item at `index`, either as its
    initial skeleton or after its enrichment completed.
    """

    index: int
    phase: Literal["skeleton", "enriched"]
    answer: EnrichedAnswer


@dataclass
class AggregationResult:
    answers: List[EnrichedAnswer] = field(default_factory=list)
    status: FetchStatus = FetchStatus.OK
    profile: UserProfile | None = None
