# core/evidence_filter.py
from typing import Any, Iterable, List, Optional, Sequence
from core.entities import PageText
from core.quote_verifier import normalize_ws, verify_quote
from model.answer import EvidenceItem
from util.constants import QUOTE_MAX_CHARS
from util.functions import as_positive_int


def coerce_evidence_item(raw: Any) -> Optional[EvidenceItem]:
    """
    Turn one model-produced evidence entry into an EvidenceItem, or None when
    it violates an item-level constraint (positive integer page, non-empty
    quote of at most QUOTE_MAX_CHARS normalized characters, string note).
    """
    if isinstance(raw, EvidenceItem):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return None

    page = as_positive_int(raw.get("page"))
    quote = raw.get("quote")
    note = raw.get("note", "")
    if note is None:
        note = ""
    if page is None or not isinstance(quote, str) or not isinstance(note, str):
        return None

    normalized = normalize_ws(quote)
    if not normalized or len(normalized) > QUOTE_MAX_CHARS:
        return None
    return EvidenceItem(page=page, quote=quote, note=note)


def filter_evidence(
    items: Iterable[Any],
    pages: Sequence[PageText],
    max_items: Optional[int] = None,
) -> List[EvidenceItem]:
    """
    Keep, in order, the items that are well-formed and whose quote verifies
    against `pages`; optionally truncate to `max_items`. Never raises.
    """
    kept: List[EvidenceItem] = []
    for raw in items or []:
        item = coerce_evidence_item(raw)
        if item is None:
            continue
        if not verify_quote(pages, item.page, item.quote):
            continue
        kept.append(item)
    if max_items is not None:
        kept = kept[: max(0, max_items)]
    return kept
