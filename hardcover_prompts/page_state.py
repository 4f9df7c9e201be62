"""Embedded page-state extraction for Hardcover prompt pages.

Prompt pages are server rendered with their whole page state serialized
into a single HTML attribute::

    <div id="app" data-page="{&quot;props&quot;:{...}}"></div>

We do not parse the HTML. We find the attribute by a fixed marker, cut
the JSON out by counting braces, undo the three entities the server
escapes, and walk a fixed path to the books::

    props -> prompt -> answers[] -> book

The brace scan is not quote aware: a raw ``{`` or ``}`` inside a JSON
string value throws the depth off. Hardcover escapes quotes, apostrophes
and ampersands in the attribute but leaves braces alone, so free text
containing braces will mis-terminate the blob (and usually fail to parse).
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from .errors import DecodeFailure, ExtractionFailure, SchemaFailure
from .models import BookRef, resolve_image_url

PAGE_STATE_MARKER = 'data-page="{'

# Order matters: ampersand last, so "&amp;quot;" becomes the literal
# text "&quot;" instead of a quote character.
_ENTITY_REPLACEMENTS = (
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&#039;", "'"),
    ("&amp;", "&"),
)


def extract_page_state(html: str) -> str:
    """
    Return the raw (still entity-escaped) JSON text of the page state.

    Raises ExtractionFailure if the marker is absent or the braces never
    balance before the end of the document.
    """
    marker_at = html.find(PAGE_STATE_MARKER)
    if marker_at < 0:
        raise ExtractionFailure("Page-state marker not found")

    start = marker_at + len(PAGE_STATE_MARKER) - 1  # the opening brace
    depth = 0
    for pos in range(start, len(html)):
        char = html[pos]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return html[start : pos + 1]

    raise ExtractionFailure("Page-state braces never balance")


def unescape_page_state(text: str) -> str:
    """
    Undo exactly the entities the server escapes in the attribute.

    No general HTML entity decoding happens here; anything else
    (e.g. "&lt;") is left as-is.
    """
    for entity, char in _ENTITY_REPLACEMENTS:
        text = text.replace(entity, char)
    return text


def parse_page_state(text: str) -> Dict[str, Any]:
    try:
        state = json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise DecodeFailure(f"Page state is not valid JSON: {exc}") from exc
    if not isinstance(state, dict):
        raise DecodeFailure("Page state is not a JSON object")
    return state


def load_page_state(html: str) -> Dict[str, Any]:
    """Marker scan, unescape and parse in one go."""
    return parse_page_state(unescape_page_state(extract_page_state(html)))


def _require_dict(parent: Dict[str, Any], key: str, where: str) -> Dict[str, Any]:
    value = parent.get(key)
    if not isinstance(value, dict):
        raise SchemaFailure(f"Page state has no object at {where}")
    return value


def _entry_belongs_to(
    entry: Dict[str, Any], username: str, account_id: Optional[int]
) -> bool:
    """
    Whether a prompt-book entry was submitted by the requested user.

    Entries carrying no attribution are kept: the page is already scoped
    to one user.
    """
    user = entry.get("user")
    if isinstance(user, dict) and isinstance(user.get("username"), str):
        return user["username"].lower() == username.lower()

    entry_user_id = entry.get("user_id")
    if isinstance(entry_user_id, int) and account_id is not None:
        return entry_user_id == account_id

    return True


def book_from_entry(entry: Any) -> Optional[BookRef]:
    """
    Build a BookRef from one prompt-book entry, or None if it lacks an
    id or a title.
    """
    if not isinstance(entry, dict):
        return None
    book = entry.get("book")
    if not isinstance(book, dict):
        return None

    book_id = book.get("id")
    title = book.get("title")
    if not isinstance(book_id, int) or isinstance(book_id, bool):
        return None
    if not isinstance(title, str) or not title:
        return None

    description = entry.get("description")
    return BookRef(
        book_id=book_id,
        title=title,
        image=resolve_image_url(book.get("cached_image"), book.get("image")),
        description=description if isinstance(description, str) and description else None,
    )


def books_for_user(
    state: Dict[str, Any], username: str, account_id: Optional[int] = None
) -> List[BookRef]:
    """
    Ordered books the given user attached to the prompt on this page.

    Raises SchemaFailure when the fixed path is missing. Individual
    entries without an id or title are skipped.
    """
    props = _require_dict(state, "props", "props")
    prompt = _require_dict(props, "prompt", "props.prompt")

    entries = prompt.get("answers")
    if not isinstance(entries, list):
        raise SchemaFailure("Page state has no list at props.prompt.answers")

    books: List[BookRef] = []
    for entry in entries:
        if isinstance(entry, dict) and not _entry_belongs_to(entry, username, account_id):
            continue
        book = book_from_entry(entry)
        if book is not None:
            books.append(book)
    return books
