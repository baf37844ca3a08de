# core/quote_verifier.py
"""
Whitespace normalization and verbatim-quote checks.

`normalize_ws` is the one definition of "verbatim" used across the service:
the evidence filter, the prompt rules and the region locator all compare
text through it.
"""
import re
from typing import Iterable, Optional
from core.entities import PageText

_WS = re.compile(r"\s+")


def normalize_ws(value: str) -> str:
    """Collapse every whitespace run to one space and trim both ends."""
    return _WS.sub(" ", value or "").strip()


def remove_ws(value: str) -> str:
    return _WS.sub("", value or "")


def find_page(pages: Iterable[PageText], page: int) -> Optional[PageText]:
    for p in pages:
        if p.page == page:
            return p
    return None


def verify_quote(pages: Iterable[PageText], page: int, quote: str) -> bool:
    """
    True when the normalized quote is a case-sensitive substring of the
    normalized text of page `page`; False when no such page exists.
    """
    found = find_page(pages, page)
    if found is None:
        return False
    return normalize_ws(quote) in normalize_ws(found.text)
