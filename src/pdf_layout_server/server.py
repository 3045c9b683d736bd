"""FastAPI REST API for PDF layout analysis."""

import base64
import binascii
import json
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .layout import (
    PRESETS,
    AnalysisResult,
    ExtractionReport,
    LayoutAnalyzer,
    NodeType,
    ResponseCache,
    count_elements,
    extract_text_from_tree,
    find_elements_by_type,
    get_generation_client,
    get_preset,
    max_depth,
    print_document_tree,
)
from .layout.analyzer import MAX_PDF_BYTES
from .layout.tree import tree_to_dict
from .logger import logger

# Maximum upload size, shared with the analyzer's precondition
MAX_UPLOAD_SIZE = MAX_PDF_BYTES

ANALYSIS_PREVIEW_LENGTH = 500
MAX_HEADERS_IN_SUMMARY = 10
MAX_PARAGRAPHS_IN_SUMMARY = 3
# Deeper trees are left out of JSON responses; the encoders recurse per level
MAX_RESPONSE_TREE_DEPTH = 50


# --- Request/Response Models ---


class Base64AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pdf: str = Field(..., min_length=1, description="Base64 PDF, data URL prefix allowed")
    extraction_schema: dict[str, Any] | None = Field(default=None, alias="schema")
    preset: str | None = None
    extraction_instructions: str | None = Field(default=None, max_length=10000)
    return_tree: bool = True
    return_elements: bool = True
    return_text: bool = False


class ElementCounts(BaseModel):
    headers: int
    tables: int
    lists: int
    total_elements: int


class HeaderSummary(BaseModel):
    level: int | None
    text: str


class ElementsSummary(BaseModel):
    headers_count: int
    headers: list[HeaderSummary]
    paragraphs_count: int
    paragraphs_preview: list[str]
    lists_count: int
    tables_count: int
    sections_count: int


class LayoutAnalysisResponse(BaseModel):
    success: bool
    status: str
    extracted_data: dict[str, Any] | None = None
    extraction_report: ExtractionReport | None = None
    document_tree: dict[str, Any] | None = None
    document_tree_preview: str | None = None
    tree_too_deep: bool = False
    element_counts: ElementCounts | None = None
    elements: ElementsSummary | None = None
    text: str | None = None
    analysis: str = ""
    degraded: bool = False
    tree_source: str | None = None
    data_source: str | None = None
    page_count: int | None = None
    cached: bool = False


class PresetsResponse(BaseModel):
    presets: list[str]


class HealthResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    code: str
    message: str


class RequestError(Exception):
    """Raised by endpoints to return an ErrorResponse with a status code."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


# --- App State ---

_analyzer: LayoutAnalyzer | None = None


def get_analyzer() -> LayoutAnalyzer:
    """Lazy initialization of the analyzer.

    Reads the LAYOUT_CACHE_ENABLED env var ("true" by default) to decide
    whether results are cached in memory.
    """
    global _analyzer
    if _analyzer is None:
        cache = None
        if os.getenv("LAYOUT_CACHE_ENABLED", "true").lower() in ("1", "true", "yes"):
            cache = ResponseCache()
        _analyzer = LayoutAnalyzer(generation_client=get_generation_client(), cache=cache)
    return _analyzer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("starting server")
    yield
    logger.info("server shutdown")


app = FastAPI(
    title="PDF Layout Analysis API",
    description="Document layout trees and schema-guided extraction from PDFs",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Exception Handlers ---


@app.exception_handler(RequestError)
async def request_error_handler(request, exc: RequestError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(code=exc.code, message=exc.message).model_dump(),
    )


# --- Helpers ---


def _resolve_extraction(
    schema: dict[str, Any] | None,
    preset_name: str | None,
    instructions: str | None,
) -> tuple[dict[str, Any] | None, str | None]:
    """Combine an explicit schema/instructions with an optional preset.

    An explicit schema replaces the preset's schema; explicit instructions
    are appended to the preset's instructions.
    """
    if not preset_name:
        return schema, instructions
    try:
        preset = get_preset(preset_name)
    except KeyError as e:
        raise RequestError(400, "INVALID_REQUEST", e.args[0]) from e

    combined = preset.instructions
    if instructions:
        combined = f"{combined}\n{instructions}"
    return schema if schema is not None else preset.schema, combined


def _parse_schema_field(raw_schema: str | None) -> dict[str, Any] | None:
    if raw_schema is None or not raw_schema.strip():
        return None
    try:
        schema = json.loads(raw_schema)
    except json.JSONDecodeError as e:
        raise RequestError(400, "INVALID_REQUEST", f"schema is not valid JSON: {e}") from e
    if not isinstance(schema, dict):
        raise RequestError(400, "INVALID_REQUEST", "schema must be a JSON object")
    return schema


def _decode_base64_pdf(encoded: str) -> bytes:
    # Accept data URLs such as "data:application/pdf;base64,JVBERi0..."
    data = encoded.split(",", 1)[1] if "," in encoded else encoded
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RequestError(400, "INVALID_REQUEST", "pdf is not valid base64") from e


def _check_size(pdf_bytes: bytes) -> None:
    if len(pdf_bytes) > MAX_UPLOAD_SIZE:
        raise RequestError(
            413,
            "PDF_TOO_LARGE",
            f"File too large. Maximum size is {MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
        )


def _build_response(
    result: AnalysisResult,
    return_tree: bool,
    return_elements: bool,
    return_text: bool,
) -> LayoutAnalysisResponse:
    if not result.success:
        if result.error_type == "precondition":
            raise RequestError(400, "INVALID_PDF", result.error or "PDF rejected")
        raise RequestError(502, "GENERATION_FAILED", result.error or "Generation failed")

    response = LayoutAnalysisResponse(
        success=True,
        status="PDF analyzed successfully",
        extracted_data=result.data,
        extraction_report=result.extraction_report,
        analysis=result.raw_analysis[:ANALYSIS_PREVIEW_LENGTH],
        degraded=result.degraded,
        tree_source=result.tree_source,
        data_source=result.data_source,
        page_count=result.page_count,
        cached=result.cached,
    )

    tree = result.document_tree
    if return_tree and tree is not None:
        depth = max_depth(tree)
        if depth > MAX_RESPONSE_TREE_DEPTH:
            logger.warn(
                "document tree too deep for response, omitting it",
                depth=depth,
                max_depth=MAX_RESPONSE_TREE_DEPTH,
            )
            response.tree_too_deep = True
        else:
            response.document_tree = tree_to_dict(tree)
            response.document_tree_preview = print_document_tree(tree)
        response.element_counts = ElementCounts(
            headers=len(find_elements_by_type(tree, NodeType.HEADER)),
            tables=len(find_elements_by_type(tree, NodeType.TABLE)),
            lists=len(find_elements_by_type(tree, NodeType.LIST)),
            total_elements=count_elements(tree),
        )

    elements = result.extracted_elements
    if return_elements and elements is not None:
        response.elements = ElementsSummary(
            headers_count=len(elements.headers),
            headers=[
                HeaderSummary(level=node.level, text=node.text)
                for node in elements.headers[:MAX_HEADERS_IN_SUMMARY]
            ],
            paragraphs_count=len(elements.paragraphs),
            paragraphs_preview=[
                node.text for node in elements.paragraphs[:MAX_PARAGRAPHS_IN_SUMMARY]
            ],
            lists_count=len(elements.lists),
            tables_count=len(elements.tables),
            sections_count=len(elements.sections),
        )

    if return_text and tree is not None:
        response.text = extract_text_from_tree(tree)

    return response


def _run_analysis(
    pdf_bytes: bytes,
    schema: dict[str, Any] | None,
    preset: str | None,
    instructions: str | None,
    return_tree: bool,
    return_elements: bool,
    return_text: bool,
) -> LayoutAnalysisResponse:
    _check_size(pdf_bytes)
    schema, instructions = _resolve_extraction(schema, preset, instructions)

    logger.info(
        "analysis requested",
        pdf_size=len(pdf_bytes),
        schema_requested=schema is not None,
        preset=preset,
    )
    result = get_analyzer().analyze(pdf_bytes, schema=schema, instructions=instructions)
    return _build_response(result, return_tree, return_elements, return_text)


# --- Health Endpoints ---


@app.get("/health", response_model=HealthResponse)
def health():
    """Liveness check."""
    return HealthResponse(status="healthy")


# --- Layout Endpoints ---


@app.get("/api/v1/layout/presets", response_model=PresetsResponse)
def list_presets():
    """List the names of the built-in extraction presets."""
    return PresetsResponse(presets=sorted(PRESETS))


@app.post("/api/v1/layout/analyze", response_model=LayoutAnalysisResponse)
def analyze_upload(
    file: UploadFile = File(...),
    schema: str | None = Form(default=None),
    preset: str | None = Form(default=None),
    instructions: str | None = Form(default=None),
    return_tree: bool = Form(default=True),
    return_elements: bool = Form(default=True),
    return_text: bool = Form(default=False),
):
    """Analyze an uploaded PDF file."""
    file_name = file.filename or "unknown.pdf"
    if not file_name.lower().endswith(".pdf"):
        raise RequestError(400, "INVALID_REQUEST", "Only PDF files are supported")

    # Read one byte past the limit so oversized uploads are detected without reading them fully
    pdf_bytes = file.file.read(MAX_UPLOAD_SIZE + 1)
    return _run_analysis(
        pdf_bytes,
        _parse_schema_field(schema),
        preset,
        instructions,
        return_tree,
        return_elements,
        return_text,
    )


@app.post("/api/v1/layout/analyze/base64", response_model=LayoutAnalysisResponse)
def analyze_base64(request: Base64AnalyzeRequest):
    """Analyze a base64-encoded PDF."""
    return _run_analysis(
        _decode_base64_pdf(request.pdf),
        request.extraction_schema,
        request.preset,
        request.extraction_instructions,
        request.return_tree,
        request.return_elements,
        request.return_text,
    )
