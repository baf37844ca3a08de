# core/region_locator.py
"""
Map an approximate quote onto the positioned text runs of one page.

Matching stages, first hit wins:
  exact    normalized quote inside the space-joined span text
  compact  whitespace-free quote inside the whitespace-free span text
           (hyphenation / spacing split across runs)
  token    any span holding one of the quote's significant tokens
           (over-inclusive, last resort)

Matching is case-insensitive; the verifier is not.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Set
from core.entities import HighlightRegion, PageLayer, Rect, ScaledRect, TextRun
from core.quote_verifier import normalize_ws, remove_ws
from util.constants import TOKEN_MAX_COUNT, TOKEN_MIN_LENGTH

_TOKEN = re.compile(r"[a-z0-9]+", re.IGNORECASE)


class LocateStatus(str, Enum):
    READY = "ready"
    NOT_FOUND = "not_found"
    RETRY = "retry"
    SUPERSEDED = "superseded"


class MatchStage(str, Enum):
    EXACT = "exact"
    COMPACT = "compact"
    TOKEN = "token"


@dataclass(frozen=True)
class SpanEntry:
    run: TextRun
    normalized_text: str
    compact_text: str
    start: int
    end: int
    compact_start: int
    compact_end: int

    @property
    def text(self) -> str:
        return self.run.text

    @property
    def rect(self) -> Rect:
        return self.run.rect


@dataclass(frozen=True)
class SpanMatch:
    entries: List[SpanEntry]
    stage: Optional[MatchStage]


@dataclass(frozen=True)
class LocateResult:
    status: LocateStatus
    page: int
    region: Optional[HighlightRegion] = None
    stage: Optional[MatchStage] = None


def normalize_for_match(value: str) -> str:
    return normalize_ws(value).lower()


def extract_significant_tokens(quote: str) -> List[str]:
    """Alphanumeric runs of 4+ chars, lower-cased, deduplicated, longest first, at most 6."""
    seen: List[str] = []
    for word in _TOKEN.findall(quote or ""):
        w = word.lower()
        if len(w) >= TOKEN_MIN_LENGTH and w not in seen:
            seen.append(w)
    return sorted(seen, key=len, reverse=True)[:TOKEN_MAX_COUNT]


def collect_span_entries(runs: Sequence[TextRun]) -> List[SpanEntry]:
    """
    Index runs in layout order. Offsets address the space-joined normalized
    text and the whitespace-free compact text; blank runs are skipped.
    """
    entries: List[SpanEntry] = []
    combined = 0
    compact = 0
    for run in runs:
        text = normalize_for_match(run.text)
        if not text:
            continue
        compact_text = remove_ws(text)
        start, end = combined, combined + len(text)
        compact_start, compact_end = compact, compact + len(compact_text)
        entries.append(
            SpanEntry(
                run=run,
                normalized_text=text,
                compact_text=compact_text,
                start=start,
                end=end,
                compact_start=compact_start,
                compact_end=compact_end,
            )
        )
        combined = end + 1  # joining space
        compact = compact_end
    return entries


def _overlapping(entries: Sequence[SpanEntry], lo: int, hi: int, compact: bool) -> List[int]:
    out = []
    for idx, e in enumerate(entries):
        s, t = (e.compact_start, e.compact_end) if compact else (e.start, e.end)
        if t > lo and s < hi:
            out.append(idx)
    return out


def find_matching_entries(entries: Sequence[SpanEntry], quote: str) -> SpanMatch:
    normalized_quote = normalize_for_match(quote)
    if not normalized_quote or not entries:
        return SpanMatch(entries=[], stage=None)

    combined_text = " ".join(e.normalized_text for e in entries)
    compact_text = "".join(e.compact_text for e in entries)

    at = combined_text.find(normalized_quote)
    if at >= 0:
        hit = _overlapping(entries, at, at + len(normalized_quote), compact=False)
        return SpanMatch(entries=[entries[i] for i in hit], stage=MatchStage.EXACT)

    compact_quote = remove_ws(normalized_quote)
    at = compact_text.find(compact_quote)
    if at >= 0:
        hit = _overlapping(entries, at, at + len(compact_quote), compact=True)
        return SpanMatch(entries=[entries[i] for i in hit], stage=MatchStage.COMPACT)

    tokens = extract_significant_tokens(normalized_quote)
    if not tokens:
        return SpanMatch(entries=[], stage=None)

    selected: Set[int] = set()
    for idx, e in enumerate(entries):
        if any(tok in e.normalized_text for tok in tokens):
            selected.add(idx)
    for tok in tokens:
        pos = compact_text.find(tok)
        while pos >= 0:
            selected.update(_overlapping(entries, pos, pos + len(tok), compact=True))
            pos = compact_text.find(tok, pos + len(tok))

    if not selected:
        return SpanMatch(entries=[], stage=None)
    return SpanMatch(
        entries=[entries[i] for i in sorted(selected)], stage=MatchStage.TOKEN
    )


def _scaled(rect: Rect, page_width: float, page_height: float, page: int) -> ScaledRect:
    return ScaledRect(
        x1=rect.left,
        y1=rect.top,
        x2=rect.right,
        y2=rect.bottom,
        width=page_width,
        height=page_height,
        page_number=page,
    )


def build_highlight_region(
    entries: Sequence[SpanEntry], layer: PageLayer
) -> Optional[HighlightRegion]:
    """
    Bounding box plus per-span rectangles, each carrying the page size so the
    caller can place overlays at any zoom. None when nothing drawable remains.
    """
    if not entries or layer.width <= 0 or layer.height <= 0:
        return None
    rects = [e.rect for e in entries if e.rect.width > 0 and e.rect.height > 0]
    if not rects:
        return None

    left = min(r.left for r in rects)
    top = min(r.top for r in rects)
    right = max(r.right for r in rects)
    bottom = max(r.bottom for r in rects)
    bounding = Rect(left=left, top=top, width=right - left, height=bottom - top)

    return HighlightRegion(
        page_number=layer.page,
        bounding_rect=_scaled(bounding, layer.width, layer.height, layer.page),
        rects=[_scaled(r, layer.width, layer.height, layer.page) for r in rects],
    )


def locate_quote(layer: Optional[PageLayer], quote: str, page: int) -> LocateResult:
    """
    RETRY while the page's text layer is missing or empty; NOT_FOUND when no
    stage selects a drawable span; READY with the region otherwise.
    """
    if not normalize_ws(quote):
        return LocateResult(status=LocateStatus.NOT_FOUND, page=page)
    if layer is None:
        return LocateResult(status=LocateStatus.RETRY, page=page)

    entries = collect_span_entries(layer.runs)
    if not entries:
        return LocateResult(status=LocateStatus.RETRY, page=page)

    match = find_matching_entries(entries, quote)
    if not match.entries:
        return LocateResult(status=LocateStatus.NOT_FOUND, page=page)

    region = build_highlight_region(match.entries, layer)
    if region is None:
        return LocateResult(status=LocateStatus.NOT_FOUND, page=page, stage=match.stage)
    return LocateResult(
        status=LocateStatus.READY, page=page, region=region, stage=match.stage
    )
