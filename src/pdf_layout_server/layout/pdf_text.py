"""Annotated text layer of a PDF, extracted with PyMuPDF.

The layout model never sees raw PDF bytes. It receives the text of each page
with light hints (block kind, font size, tables) that help it reconstruct
the document structure.
"""

import statistics
from dataclasses import dataclass, field

import fitz  # PyMuPDF

from ..logger import logger

# Threshold for detecting garbage text (corrupted font encodings)
GARBAGE_CONTROL_CHAR_RATIO = 0.1

PDF_MAGIC = b"%PDF-"
DEFAULT_FONT_SIZE = 12.0


class PreconditionError(ValueError):
    """Raised when input is rejected before any model call."""


class EmptyPDFError(PreconditionError):
    pass


class PDFTooLargeError(PreconditionError):
    pass


class InvalidPDFError(PreconditionError):
    pass


@dataclass
class TextBlock:
    """A text block on a PDF page."""

    kind: str  # "heading", "paragraph", "list_item"
    text: str
    font_size: float
    is_bold: bool


@dataclass
class PageText:
    page_number: int
    blocks: list[TextBlock] = field(default_factory=list)
    tables: list[list[list[str]]] = field(default_factory=list)
    skipped: bool = False

    @property
    def has_text(self) -> bool:
        return bool(self.blocks) or bool(self.tables)


@dataclass
class PdfText:
    """Text layer of a whole document."""

    pages: list[PageText] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def has_text(self) -> bool:
        return any(page.has_text for page in self.pages)

    def render(self) -> str:
        """Render the text layer as prompt input.

        Example:
            --- Page 1 ---
            [heading 18pt] Experience
            [paragraph] Worked at X
            [list_item] • Built Y
            [table 1]
            Name | Role
        """
        parts = []
        for page in self.pages:
            lines = [f"--- Page {page.page_number} ---"]
            if page.skipped:
                lines.append("[unreadable page]")
            for block in page.blocks:
                hint = block.kind
                if block.kind == "heading":
                    hint += f" {block.font_size:.0f}pt"
                lines.append(f"[{hint}] {block.text}")
            for table_idx, rows in enumerate(page.tables, 1):
                lines.append(f"[table {table_idx}]")
                lines.extend(" | ".join(row) for row in rows)
            parts.append("\n".join(lines))
        return "\n\n".join(parts)


def validate_pdf_bytes(pdf_bytes: bytes, max_bytes: int) -> None:
    """Check the cheap preconditions on raw PDF content.

    Raises:
        EmptyPDFError: If the content is empty.
        PDFTooLargeError: If the content exceeds ``max_bytes``.
        InvalidPDFError: If the content lacks a PDF header.
    """
    if not pdf_bytes:
        raise EmptyPDFError("PDF content is empty")
    if len(pdf_bytes) > max_bytes:
        raise PDFTooLargeError(
            f"PDF is {len(pdf_bytes)} bytes, maximum is {max_bytes} bytes"
        )
    if not pdf_bytes.startswith(PDF_MAGIC):
        raise InvalidPDFError("Invalid PDF file. Content does not have a valid PDF header.")


def _is_garbage_text(text: str) -> bool:
    """Detect binary garbage produced by corrupted font encodings.

    Args:
        text: Text extracted from one page.

    Returns:
        True if the share of control characters is above
        GARBAGE_CONTROL_CHAR_RATIO.
    """
    if not text or len(text) < 20:
        return False
    # Control characters (0x00-0x1F) other than common whitespace
    control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\t\r ")
    return control_chars / len(text) > GARBAGE_CONTROL_CHAR_RATIO


def _extract_spans_info(block_dict: dict) -> tuple[str, float, bool]:
    """Extract text, average font size and bold status from a block's spans.

    Args:
        block_dict: A text block from PyMuPDF's ``page.get_text("dict")``.

    Returns:
        Tuple of (text, average_font_size, is_bold). A block without
        visible text yields ("", DEFAULT_FONT_SIZE, False).
    """
    texts = []
    font_sizes = []
    bold_count = 0

    for line in block_dict.get("lines", []):
        for span in line.get("spans", []):
            text = span.get("text", "").strip()
            if not text:
                continue
            texts.append(text)
            font_sizes.append(span.get("size", DEFAULT_FONT_SIZE))
            flags = span.get("flags", 0)
            if (flags & 2**4) or "bold" in span.get("font", "").lower():
                bold_count += 1

    if not texts:
        return "", DEFAULT_FONT_SIZE, False

    combined_text = " ".join(texts).replace("\x00", "")
    return combined_text, statistics.mean(font_sizes), bold_count > len(texts) / 2


def _classify_block(text: str, font_size: float, median_size: float, is_bold: bool) -> str:
    """Guess the kind of a text block from its typography.

    Args:
        text: The block's text.
        font_size: Average font size of the block.
        median_size: Median block font size across the document.
        is_bold: Whether most of the block's spans are bold.

    Returns:
        "list_item", "heading" or "paragraph".
    """
    stripped = text.strip()
    if stripped and (
        stripped[0] in "•◦▪▸►-*"
        or (len(stripped) > 2 and stripped[0].isdigit() and stripped[1] in ".)")
    ):
        return "list_item"
    # Headings: larger font, or bold with short text
    if font_size > median_size * 1.2:
        return "heading"
    if is_bold and len(text) < 100:
        return "heading"
    return "paragraph"


def _extract_tables(page, page_number: int) -> list[list[list[str]]]:
    tables = []
    try:
        for table in page.find_tables():
            extracted = table.extract()
            if extracted:
                tables.append(
                    [[str(cell) if cell else "" for cell in row] for row in extracted]
                )
    except Exception as e:
        # Table detection is a hint only; the page text is still usable
        logger.warn("table extraction failed", page_number=page_number, error=str(e))
    return tables


def extract_pdf_text(pdf_bytes: bytes) -> PdfText:
    """Extract the annotated text layer from in-memory PDF content.

    Args:
        pdf_bytes: Raw PDF content.

    Returns:
        PdfText with one entry per page.

    Raises:
        InvalidPDFError: If PyMuPDF cannot open the content.
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise InvalidPDFError(f"Unable to open PDF: {e}") from e

    try:
        page_dicts = [page.get_text("dict") for page in doc]

        # First pass: median font size across the document
        all_font_sizes = []
        for page_dict in page_dicts:
            for block in page_dict.get("blocks", []):
                if block.get("type") == 0:  # Text block
                    _, font_size, _ = _extract_spans_info(block)
                    if font_size > 0:
                        all_font_sizes.append(font_size)
        median_size = statistics.median(all_font_sizes) if all_font_sizes else DEFAULT_FONT_SIZE

        pages = []
        for page_idx, (page, page_dict) in enumerate(zip(doc, page_dicts)):
            page_number = page_idx + 1
            spans = [
                _extract_spans_info(block)
                for block in page_dict.get("blocks", [])
                if block.get("type") == 0
            ]
            spans = [info for info in spans if info[0].strip()]

            if _is_garbage_text(" ".join(text for text, _, _ in spans)):
                logger.warn("garbage text detected, skipping page", page_number=page_number)
                pages.append(PageText(page_number=page_number, skipped=True))
                continue

            blocks = [
                TextBlock(
                    kind=_classify_block(text, size, median_size, bold),
                    text=text,
                    font_size=size,
                    is_bold=bold,
                )
                for text, size, bold in spans
            ]
            pages.append(
                PageText(
                    page_number=page_number,
                    blocks=blocks,
                    tables=_extract_tables(page, page_number),
                )
            )

        result = PdfText(pages=pages)
        logger.info(
            "pdf text extracted",
            total_pages=result.page_count,
            total_blocks=sum(len(p.blocks) for p in pages),
            total_tables=sum(len(p.tables) for p in pages),
            skipped_pages=sum(1 for p in pages if p.skipped),
        )
        return result
    finally:
        doc.close()
