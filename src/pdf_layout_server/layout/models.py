"""Document tree and analysis result models."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class NodeType(str, Enum):
    """Closed vocabulary of document tree node kinds."""

    ROOT = "root"
    SECTION = "section"
    HEADER = "header"
    PARAGRAPH = "paragraph"
    LIST = "list"
    LIST_ITEM = "listItem"
    TABLE = "table"
    TABLE_ROW = "tableRow"
    TABLE_CELL = "tableCell"
    OTHER = "other"


# Catalog field name -> node type, in catalog order
CATALOG_TYPES: dict[str, NodeType] = {
    "headers": NodeType.HEADER,
    "paragraphs": NodeType.PARAGRAPH,
    "lists": NodeType.LIST,
    "tables": NodeType.TABLE,
    "sections": NodeType.SECTION,
}


class DocumentNode(BaseModel):
    """One structural unit of an analyzed document."""

    id: str = Field(min_length=1)
    type: NodeType
    text: str = ""
    level: int | None = None
    children: list["DocumentNode"] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)


class ExtractedElements(BaseModel):
    """Snapshot of tree nodes grouped by type, in reading order."""

    headers: list[DocumentNode] = Field(default_factory=list)
    paragraphs: list[DocumentNode] = Field(default_factory=list)
    lists: list[DocumentNode] = Field(default_factory=list)
    tables: list[DocumentNode] = Field(default_factory=list)
    sections: list[DocumentNode] = Field(default_factory=list)


class ExtractionReport(BaseModel):
    """How well extracted data matches the schema it was requested with.

    Field paths are dotted (``personal_info.email``); list positions appear
    as indices (``experience.0.company``).
    """

    valid: bool
    missing_fields: list[str] = Field(default_factory=list)
    invalid_fields: list[str] = Field(default_factory=list)


TreeSource = Literal["strict", "repaired", "scanned", "catalog", "fallback"]
DataSource = Literal["strict", "repaired", "scanned", "absent"]
ErrorType = Literal["precondition", "generation"]


class AnalysisResult(BaseModel):
    """Outcome of a single layout analysis call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: dict[str, Any] | None = None
    extraction_report: ExtractionReport | None = None
    document_tree: DocumentNode | None = None
    extracted_elements: ExtractedElements | None = None
    raw_analysis: str = ""
    error: str | None = None
    error_type: ErrorType | None = None
    degraded: bool = False
    tree_source: TreeSource | None = None
    data_source: DataSource | None = None
    page_count: int | None = None
    cached: bool = False
