"""Layout analysis orchestrator.

One call to ``LayoutAnalyzer.analyze`` checks the input, renders the PDF
text layer, asks the model once for the layout tree (and the schema fields
when a schema is given), and assembles an ``AnalysisResult``.

Only a failed model call makes a result unsuccessful after the input has
been accepted; malformed model output degrades the result instead.
"""

import os
import time
from typing import Any

from ..logger import clear_context, logger, set_context
from .cache import ResponseCache, compute_fingerprint
from .generation import (
    GenerationClient,
    GenerationOptions,
    ModelError,
    get_generation_client,
)
from .models import AnalysisResult
from .pdf_text import (
    EmptyPDFError,
    PreconditionError,
    extract_pdf_text,
    validate_pdf_bytes,
)
from .presets import validate_extraction
from .prompts import build_layout_prompt
from .response_parser import parse_response
from .tree import build_extracted_elements, count_elements

MAX_PDF_BYTES = int(os.getenv("LAYOUT_MAX_PDF_BYTES", str(20 * 1024 * 1024)))


class LayoutAnalyzer:
    """Turns PDF content into a document tree via a generative model."""

    def __init__(
        self,
        generation_client: GenerationClient,
        cache: ResponseCache | None = None,
        max_pdf_bytes: int = MAX_PDF_BYTES,
        options: GenerationOptions | None = None,
    ):
        """Initialize the analyzer.

        Args:
            generation_client: Client used for the single model call per analysis.
            cache: Optional result cache consulted before the model call.
            max_pdf_bytes: Largest accepted PDF; bigger input is rejected.
            options: Generation options passed to the client.
        """
        self.generation_client = generation_client
        self.cache = cache
        self.max_pdf_bytes = max_pdf_bytes
        self.options = options or GenerationOptions()

    def _render_document(self, pdf_bytes: bytes) -> tuple[str, int]:
        """Render the PDF text layer for the prompt.

        Raises:
            PreconditionError: If the content cannot be opened or has no
                extractable text.
        """
        pdf_text = extract_pdf_text(pdf_bytes)
        if not pdf_text.has_text:
            # OCR is out of scope, so scanned documents cannot be analyzed
            raise EmptyPDFError("PDF has no extractable text layer")
        return pdf_text.render(), pdf_text.page_count

    def _rejected(self, error: PreconditionError, pdf_bytes: bytes | None) -> AnalysisResult:
        logger.warn(
            "pdf rejected",
            reason=type(error).__name__,
            error=str(error),
            pdf_size=len(pdf_bytes or b""),
        )
        return AnalysisResult(success=False, error=str(error), error_type="precondition")

    def analyze(
        self,
        pdf_bytes: bytes,
        schema: dict[str, Any] | None = None,
        instructions: str | None = None,
    ) -> AnalysisResult:
        """Analyze a PDF's layout and optionally extract schema fields.

        Args:
            pdf_bytes: Raw PDF content.
            schema: Optional mapping describing the fields to extract.
            instructions: Optional free-text extraction instructions.

        Returns:
            AnalysisResult. ``success`` is False only for rejected input
            (``error_type="precondition"``) or a failed model call
            (``error_type="generation"``).
        """
        try:
            validate_pdf_bytes(pdf_bytes, self.max_pdf_bytes)
        except PreconditionError as e:
            return self._rejected(e, pdf_bytes)

        fingerprint = compute_fingerprint(pdf_bytes, schema, instructions)
        set_context(fingerprint=fingerprint[:16])

        try:
            start = time.perf_counter()

            if self.cache is not None:
                cached = self.cache.get(fingerprint)
                if cached is not None:
                    logger.info("layout analysis served from cache")
                    return cached.model_copy(update={"cached": True})

            try:
                document_text, page_count = self._render_document(pdf_bytes)
            except PreconditionError as e:
                return self._rejected(e, pdf_bytes)

            prompt = build_layout_prompt(document_text, schema, instructions)

            generation_start = time.perf_counter()
            try:
                raw_analysis = self.generation_client.generate(prompt, self.options)
            except (ModelError, TimeoutError) as e:
                logger.error(
                    "layout analysis failed",
                    error=str(e),
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
                return AnalysisResult(
                    success=False,
                    error=str(e) or type(e).__name__,
                    error_type="generation",
                    page_count=page_count,
                )
            generation_duration_ms = (time.perf_counter() - generation_start) * 1000

            parsed = parse_response(raw_analysis)
            report = None
            if schema is not None:
                report = validate_extraction(parsed.data or {}, schema)
                if not report.valid:
                    logger.info(
                        "extracted data incomplete",
                        missing_fields=len(report.missing_fields),
                        invalid_fields=len(report.invalid_fields),
                    )

            result = AnalysisResult(
                success=True,
                data=parsed.data,
                extraction_report=report,
                document_tree=parsed.document_tree,
                extracted_elements=build_extracted_elements(parsed.document_tree),
                raw_analysis=raw_analysis,
                degraded=parsed.degraded,
                tree_source=parsed.tree_source,
                data_source=parsed.data_source,
                page_count=page_count,
            )

            if self.cache is not None and not result.degraded:
                self.cache.put(fingerprint, result)

            logger.info(
                "layout analysis completed",
                page_count=page_count,
                total_elements=count_elements(parsed.document_tree),
                tree_source=parsed.tree_source,
                data_source=parsed.data_source,
                schema_requested=schema is not None,
                generation_duration_ms=round(generation_duration_ms, 2),
                total_duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return result
        finally:
            clear_context()


# Convenience function for module-level access
_default_analyzer: LayoutAnalyzer | None = None


def _get_default_analyzer() -> LayoutAnalyzer:
    """Get or create the default analyzer (no cache)."""
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = LayoutAnalyzer(generation_client=get_generation_client())
    return _default_analyzer


def analyze_pdf(
    pdf_bytes: bytes,
    schema: dict[str, Any] | None = None,
    instructions: str | None = None,
) -> AnalysisResult:
    """Analyze a PDF with the default analyzer.

    Args:
        pdf_bytes: Raw PDF content.
        schema: Optional extraction schema.
        instructions: Optional extraction instructions.

    Returns:
        AnalysisResult for the document.
    """
    return _get_default_analyzer().analyze(pdf_bytes, schema, instructions)
