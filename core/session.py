# core/session.py
"""
Per-session document state and the version checks that keep async work honest.

Every unit of async work captures a DocumentContext when it starts and
compares it with the session when it finishes. Replacing the document bumps
`version`; asking a new question bumps `ticket`. Work whose context is no
longer current is dropped without an error.
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple
from core.entities import PageLayer, PageText
from core.grounding import GroundingOrchestrator
from core.highlighter import HighlightController, ViewerState
from core.region_locator import LocateResult, LocateStatus
from model.answer import Answer
from util.errors import GroundingError, InputInvalid
import logging

logger = logging.getLogger(__name__)


class DocumentSource(Protocol):
    name: str

    def extract_pages(self) -> List[PageText]: ...

    def render_layer(self, page_number: int) -> PageLayer: ...


@dataclass(frozen=True)
class DocumentContext:
    version: int
    ticket: int
    pages: Tuple[PageText, ...]


class DocumentSession:
    def __init__(
        self,
        session_id: str,
        *,
        max_highlight_attempts: Optional[int] = None,
        highlight_retry_delay: Optional[float] = None,
    ) -> None:
        self.id = session_id
        self.viewer = ViewerState()
        self.highlighter = HighlightController(
            self.viewer,
            self.page_layer,
            max_attempts=max_highlight_attempts,
            retry_delay=highlight_retry_delay,
        )
        self._version = 0
        self._ticket = 0
        self._source: Optional[DocumentSource] = None
        self._pages: Tuple[PageText, ...] = ()
        self._layers: Dict[int, PageLayer] = {}
        self._layer_tasks: Dict[int, asyncio.Task] = {}
        self.answer: Optional[Answer] = None

    # ---------------- Document lifecycle ----------------

    @property
    def version(self) -> int:
        return self._version

    @property
    def pages(self) -> Tuple[PageText, ...]:
        return self._pages

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def has_document(self) -> bool:
        return self._source is not None

    def _invalidate(self) -> int:
        self._version += 1
        self._ticket += 1
        self.highlighter.clear()
        for task in self._layer_tasks.values():
            task.cancel()
        self._layer_tasks.clear()
        self._layers.clear()
        self._source = None
        self._pages = ()
        self.answer = None
        return self._version

    async def load_document(self, source: DocumentSource) -> Optional[int]:
        """
        Replace the current document. Returns the new version, or None when a
        later load superseded this one while its text was being extracted.
        """
        version = self._invalidate()
        logger.info("session.load.start session=%s version=%d", self.id, version)
        pages = await asyncio.to_thread(source.extract_pages)
        if version != self._version:
            logger.info("session.load.stale session=%s version=%d", self.id, version)
            return None
        self._source = source
        self._pages = tuple(pages)
        logger.info(
            "session.load.ok session=%s version=%d pages=%d",
            self.id,
            version,
            len(pages),
        )
        return version

    def close(self) -> None:
        self._invalidate()

    # ---------------- Questions ----------------

    def begin_question(self) -> DocumentContext:
        self._ticket += 1
        return DocumentContext(
            version=self._version, ticket=self._ticket, pages=self._pages
        )

    def is_current(self, ctx: DocumentContext) -> bool:
        return ctx.version == self._version and ctx.ticket == self._ticket

    async def ask(
        self, orchestrator: GroundingOrchestrator, question: str, max_evidence: int
    ) -> Optional[Answer]:
        """
        Ground a question against the current pages. Returns None when the
        document was replaced or a newer question started before completion.
        """
        if not self.has_document:
            raise InputInvalid("No document is loaded")
        ctx = self.begin_question()
        try:
            outcome = await orchestrator.run(question, list(ctx.pages), max_evidence)
        except GroundingError:
            if not self.is_current(ctx):
                logger.info(
                    "session.ask.stale_failure session=%s version=%d",
                    self.id,
                    ctx.version,
                )
                return None
            raise

        if not self.is_current(ctx):
            logger.info(
                "session.ask.stale session=%s version=%d ticket=%d current=%d/%d",
                self.id,
                ctx.version,
                ctx.ticket,
                self._version,
                self._ticket,
            )
            return None
        self.answer = outcome.answer
        return outcome.answer

    # ---------------- Text layers & highlights ----------------

    def page_layer(self, page_number: int) -> Optional[PageLayer]:
        """
        Cached text layer of a page, or None while it is still being built
        (the build is started on first request).
        """
        layer = self._layers.get(page_number)
        if layer is not None:
            return layer
        if self._source is None or not 1 <= page_number <= self.page_count:
            return None
        if page_number not in self._layer_tasks:
            self._layer_tasks[page_number] = asyncio.create_task(
                self._build_layer(self._version, self._source, page_number)
            )
        return None

    async def _build_layer(
        self, version: int, source: DocumentSource, page_number: int
    ) -> None:
        try:
            layer = await asyncio.to_thread(source.render_layer, page_number)
        except Exception as e:
            logger.error(
                "session.layer.error session=%s page=%d err=%s",
                self.id,
                page_number,
                type(e).__name__,
            )
            # Empty layer: the locator keeps answering RETRY until attempts run out.
            layer = PageLayer(page=page_number, width=0.0, height=0.0, runs=[])
        if version != self._version:
            return
        self._layers[page_number] = layer
        self._layer_tasks.pop(page_number, None)

    async def highlight(self, page: int, quote: str) -> LocateResult:
        if not self.has_document or not 1 <= page <= self.page_count:
            logger.warning("session.highlight.bad_page session=%s page=%d", self.id, page)
            return LocateResult(status=LocateStatus.NOT_FOUND, page=page)
        return await self.highlighter.highlight_quote(page, quote)

    def clear_highlights(self) -> None:
        self.highlighter.clear()
