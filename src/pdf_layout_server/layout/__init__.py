from .models import (
    AnalysisResult,
    DocumentNode,
    ExtractionReport,
    ExtractedElements,
    NodeType,
)
from .tree import (
    build_extracted_elements,
    copy_tree,
    count_by_type,
    count_elements,
    export_tree_as_json,
    extract_text_from_tree,
    find_elements_by_type,
    iter_nodes,
    max_depth,
    print_document_tree,
)
from .prompts import build_layout_prompt
from .response_parser import (
    ParsedResponse,
    normalize_node_type,
    normalize_tree,
    parse_document_tree,
    parse_response,
)
from .pdf_text import (
    EmptyPDFError,
    InvalidPDFError,
    PDFTooLargeError,
    PdfText,
    PreconditionError,
    extract_pdf_text,
    validate_pdf_bytes,
)
from .generation import (
    AnthropicGenerationClient,
    GenerationClient,
    GenerationOptions,
    ModelError,
    OpenAIGenerationClient,
    get_generation_client,
)
from .cache import ResponseCache, compute_fingerprint
from .analyzer import LayoutAnalyzer, analyze_pdf
from .presets import PRESETS, ExtractionPreset, get_preset, validate_extraction

__all__ = [
    # Models
    "AnalysisResult",
    "DocumentNode",
    "ExtractionReport",
    "ExtractedElements",
    "NodeType",
    # Tree algorithms
    "build_extracted_elements",
    "copy_tree",
    "count_by_type",
    "count_elements",
    "export_tree_as_json",
    "extract_text_from_tree",
    "find_elements_by_type",
    "iter_nodes",
    "max_depth",
    "print_document_tree",
    # Prompt
    "build_layout_prompt",
    # Response parser
    "ParsedResponse",
    "normalize_node_type",
    "normalize_tree",
    "parse_document_tree",
    "parse_response",
    # PDF text layer
    "EmptyPDFError",
    "InvalidPDFError",
    "PDFTooLargeError",
    "PdfText",
    "PreconditionError",
    "extract_pdf_text",
    "validate_pdf_bytes",
    # Generation
    "AnthropicGenerationClient",
    "GenerationClient",
    "GenerationOptions",
    "ModelError",
    "OpenAIGenerationClient",
    "get_generation_client",
    # Cache
    "ResponseCache",
    "compute_fingerprint",
    # Orchestrator
    "LayoutAnalyzer",
    "analyze_pdf",
    # Presets
    "PRESETS",
    "ExtractionPreset",
    "get_preset",
    "validate_extraction",
]
