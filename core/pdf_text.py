# core/pdf_text.py
from typing import List
import fitz
from core.entities import PageLayer, PageText, Rect, TextRun
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


def extract_pages_texts(file_bytes: bytes) -> List[PageText]:
    """
    Return one PageText per page (1-based, dense) for the whole PDF.
    Raises ValueError when PyMuPDF cannot open the bytes.
    """
    out: List[PageText] = []
    try:
        with timed(logger, "pdf.open"):
            doc = fitz.open(stream=file_bytes, filetype="pdf")
    except Exception as e:
        # do not log payloads
        logger.error("pdf.open.error err=%s", type(e).__name__)
        raise ValueError("unreadable pdf") from e

    with doc:
        pages = doc.page_count
        with timed(logger, "pdf.parse", pages=pages):
            for i in range(pages):
                page = doc.load_page(i)
                out.append(PageText(page=i + 1, text=page.get_text("text") or ""))
    logger.info("pdf.pages count=%d", len(out))
    return out


def extract_page_layer(file_bytes: bytes, page_number: int) -> PageLayer:
    """
    Positioned text runs of one page, in layout order, with rectangles relative
    to the page's top-left corner.
    """
    runs: List[TextRun] = []
    with timed(logger, "pdf.layer", page=page_number):
        with fitz.open(stream=file_bytes, filetype="pdf") as doc:
            page = doc.load_page(page_number - 1)
            bounds = page.rect
            data = page.get_text("dict")
            for block in data.get("blocks", []):
                if block.get("type") != 0:  # images
                    continue
                for line in block.get("lines", []):
                    for span in line.get("spans", []):
                        text = span.get("text") or ""
                        if not text.strip():
                            continue
                        x0, y0, x1, y1 = span["bbox"]
                        runs.append(
                            TextRun(
                                text=text,
                                rect=Rect(
                                    left=x0 - bounds.x0,
                                    top=y0 - bounds.y0,
                                    width=x1 - x0,
                                    height=y1 - y0,
                                ),
                            )
                        )
    logger.info("pdf.layer.runs page=%d count=%d", page_number, len(runs))
    return PageLayer(
        page=page_number, width=bounds.width, height=bounds.height, runs=runs
    )


class PdfDocument:
    """
    A loaded PDF as the rest of the service sees it: page texts for grounding
    and a per-page text layer for highlighting. Each call opens its own
    fitz handle, so calls are safe to run in worker threads.
    """

    def __init__(self, file_bytes: bytes, name: str = "document.pdf") -> None:
        self._bytes = file_bytes
        self.name = name
        self.page_count = 0

    def extract_pages(self) -> List[PageText]:
        pages = extract_pages_texts(self._bytes)
        self.page_count = len(pages)
        return pages

    def render_layer(self, page_number: int) -> PageLayer:
        return extract_page_layer(self._bytes, page_number)
