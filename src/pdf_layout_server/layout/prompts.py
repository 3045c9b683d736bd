"""Prompt construction and the response wire protocol.

The model is asked to answer with up to two delimited sections:

    <<<DOCUMENT_TREE>>>
    {"id": "root", "type": "root", "text": "", "children": [...]}
    <<<END_DOCUMENT_TREE>>>
    <<<EXTRACTED_DATA>>>
    {"name": "...", ...}
    <<<END_EXTRACTED_DATA>>>

The data section is only requested when a schema is supplied. The response
parser reads the same markers, so any change here must be mirrored there.
"""

import json
from typing import Any

from .models import NodeType

TREE_START = "<<<DOCUMENT_TREE>>>"
TREE_END = "<<<END_DOCUMENT_TREE>>>"
DATA_START = "<<<EXTRACTED_DATA>>>"
DATA_END = "<<<END_EXTRACTED_DATA>>>"

NODE_TYPE_DESCRIPTIONS: dict[NodeType, str] = {
    NodeType.ROOT: "the single top-level node for the whole document",
    NodeType.SECTION: "a logical grouping of related content (e.g. Experience, Education)",
    NodeType.HEADER: "a heading or title; set level to its depth, 1 = most prominent",
    NodeType.PARAGRAPH: "a block of running text",
    NodeType.LIST: "a bulleted or numbered list; set level to its nesting depth, 1 = outermost",
    NodeType.LIST_ITEM: "one entry of a list",
    NodeType.TABLE: "a table; its children are tableRow nodes",
    NodeType.TABLE_ROW: "one row of a table; its children are tableCell nodes",
    NodeType.TABLE_CELL: "one cell of a table row",
    NodeType.OTHER: "anything that fits none of the above (captions, footers, signatures)",
}

LAYOUT_INSTRUCTIONS = """You are a document layout analyst. Describe the visual and logical structure of the document below as a tree.

Use ONLY these node types:
{vocabulary}

Every node is a JSON object with these fields:
- "id": a short identifier unique within the tree
- "type": one of the node types above
- "text": the text directly belonging to this node ("" for pure containers such as root, section, table, tableRow)
- "level": an integer for header and list nodes, otherwise null
- "children": the child nodes in reading order ([] when there are none)
- "attributes": an object with optional metadata, e.g. {{"page": 1}}

Rules:
1. There is exactly one node of type "root" and it is the top of the tree
2. Keep the reading order of the document
3. Copy text exactly as it appears; do not summarize or invent content
4. Nest content under the section or header it belongs to

Write the tree as a single JSON object between these markers:
{tree_start}
...the root node JSON...
{tree_end}"""

SCHEMA_INSTRUCTIONS = """Also extract data from the document into this JSON schema:

{schema}

Extraction rules:
1. Extract ONLY information that exists in the document
2. Use exact values from the document, do not fabricate data
3. Use null for fields that are missing
4. For lists, extract all items
5. Follow the nested structure of the schema exactly

Write the extracted data as a single JSON object between these markers, after the tree:
{data_start}
...the extracted JSON...
{data_end}"""


def _vocabulary() -> str:
    return "\n".join(
        f'- "{node_type.value}": {description}'
        for node_type, description in NODE_TYPE_DESCRIPTIONS.items()
    )


def build_layout_prompt(
    document_text: str,
    schema: dict[str, Any] | None = None,
    instructions: str | None = None,
) -> str:
    """Build the single prompt for a layout analysis call.

    Args:
        document_text: Annotated text layer of the PDF.
        schema: Optional field-extraction schema the model should fill in.
        instructions: Optional free-text extraction instructions.

    Returns:
        The complete prompt string.
    """
    parts = [
        LAYOUT_INSTRUCTIONS.format(
            vocabulary=_vocabulary(), tree_start=TREE_START, tree_end=TREE_END
        )
    ]

    if schema:
        parts.append(
            SCHEMA_INSTRUCTIONS.format(
                schema=json.dumps(schema, indent=2, ensure_ascii=False),
                data_start=DATA_START,
                data_end=DATA_END,
            )
        )

    if instructions and instructions.strip():
        parts.append(f"Additional instructions:\n{instructions.strip()}")

    parts.append(f"Document:\n{document_text}")
    return "\n\n".join(parts)
