# core/highlighter.py
import asyncio
from typing import Callable, List, Optional, Protocol
from config.settings import settings
from core.entities import HighlightRegion, PageLayer
from core.quote_verifier import normalize_ws
from core.region_locator import LocateResult, LocateStatus, locate_quote
from util.functions import preview
import logging

logger = logging.getLogger(__name__)

LayerSource = Callable[[int], Optional[PageLayer]]


class PdfViewer(Protocol):
    def scroll_to_page(self, page_number: int) -> None: ...

    def apply_highlight(self, region: HighlightRegion) -> None: ...

    def clear_highlights(self) -> None: ...


class ViewerState:
    """
    In-memory mirror of what the viewer shows: the page scrolled to and the
    single active highlight set.
    """

    def __init__(self) -> None:
        self.current_page: Optional[int] = None
        self.highlights: List[HighlightRegion] = []

    def scroll_to_page(self, page_number: int) -> None:
        self.current_page = page_number

    def apply_highlight(self, region: HighlightRegion) -> None:
        self.highlights = [region]

    def clear_highlights(self) -> None:
        self.highlights = []


class HighlightController:
    """
    Places at most one highlight at a time. While a page's text layer is not
    built yet the lookup is retried on a fixed delay; clearing or starting a
    new highlight cancels any pending retry first.
    """

    def __init__(
        self,
        viewer: PdfViewer,
        layer_source: LayerSource,
        *,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self._viewer = viewer
        self._layer_source = layer_source
        self._max_attempts = (
            settings.HIGHLIGHT_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self._retry_delay = (
            settings.HIGHLIGHT_RETRY_MS / 1000.0 if retry_delay is None else retry_delay
        )
        self._pending: Optional[asyncio.Task] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def cancel_pending(self) -> None:
        if self.has_pending:
            self._pending.cancel()  # type: ignore[union-attr]
        self._pending = None

    def clear(self) -> None:
        self.cancel_pending()
        self._viewer.clear_highlights()

    async def highlight_quote(self, page: int, quote: str) -> LocateResult:
        if not normalize_ws(quote):
            return LocateResult(status=LocateStatus.NOT_FOUND, page=page)

        self.clear()
        task = asyncio.create_task(self._attempt(page, quote))
        self._pending = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if self._pending is task:
            self._pending = None

        if task.cancelled():
            logger.info("highlight.superseded page=%d", page)
            return LocateResult(status=LocateStatus.SUPERSEDED, page=page)
        return task.result()

    async def _attempt(self, page: int, quote: str) -> LocateResult:
        attempt = 0
        while True:
            result = locate_quote(self._layer_source(page), quote, page)

            if result.status is LocateStatus.READY and result.region is not None:
                # Applied inside the task so a cancelled lookup can never draw.
                self._viewer.apply_highlight(result.region)
                self._viewer.scroll_to_page(page)
                logger.info(
                    "highlight.ready page=%d stage=%s rects=%d attempts=%d",
                    page,
                    result.stage.value if result.stage else None,
                    len(result.region.rects),
                    attempt + 1,
                )
                return result

            if result.status is LocateStatus.NOT_FOUND:
                logger.warning(
                    "highlight.not_found page=%d quote=%s", page, preview(quote)
                )
                self._viewer.scroll_to_page(page)
                return result

            if attempt >= self._max_attempts:
                logger.warning(
                    "highlight.layer_not_ready page=%d attempts=%d", page, attempt + 1
                )
                return result

            attempt += 1
            await asyncio.sleep(self._retry_delay)
