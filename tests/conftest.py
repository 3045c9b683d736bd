"""Shared fixtures for layout analysis tests."""

import json

import fitz  # PyMuPDF
import pytest

from pdf_layout_server.layout import DocumentNode, NodeType
from pdf_layout_server.layout.prompts import DATA_END, DATA_START, TREE_END, TREE_START


def _build_response(tree=None, data=None, prose: str = "") -> str:
    """Build a model response in the delimited wire format.

    ``tree`` and ``data`` may be dicts (serialized here) or raw strings
    (inserted verbatim, e.g. to simulate malformed output).
    """
    parts = [prose] if prose else []
    if tree is not None:
        body = tree if isinstance(tree, str) else json.dumps(tree)
        parts.append(f"{TREE_START}\n{body}\n{TREE_END}")
    if data is not None:
        body = data if isinstance(data, str) else json.dumps(data)
        parts.append(f"{DATA_START}\n{body}\n{DATA_END}")
    return "\n".join(parts)


@pytest.fixture
def resume_tree_payload() -> dict:
    """Tree payload as a model would emit it."""
    return {
        "id": "root",
        "type": "root",
        "text": "",
        "level": None,
        "children": [
            {"id": "h1", "type": "header", "text": "Experience", "level": 1, "children": []},
            {
                "id": "s1",
                "type": "section",
                "text": "",
                "children": [
                    {"id": "p1", "type": "paragraph", "text": "Worked at X", "children": []},
                    {
                        "id": "l1",
                        "type": "list",
                        "text": "",
                        "level": 1,
                        "children": [
                            {"id": "li1", "type": "listItem", "text": "Built Y", "children": []}
                        ],
                    },
                ],
            },
        ],
        "attributes": {"page": 1},
    }


@pytest.fixture
def example_tree() -> DocumentNode:
    """root -> [header("Experience"), section -> [paragraph("Worked at X"), list -> [listItem("Built Y")]]]"""
    return DocumentNode(
        id="root",
        type=NodeType.ROOT,
        children=[
            DocumentNode(id="h1", type=NodeType.HEADER, text="Experience", level=1),
            DocumentNode(
                id="s1",
                type=NodeType.SECTION,
                children=[
                    DocumentNode(id="p1", type=NodeType.PARAGRAPH, text="Worked at X"),
                    DocumentNode(
                        id="l1",
                        type=NodeType.LIST,
                        level=1,
                        children=[
                            DocumentNode(id="li1", type=NodeType.LIST_ITEM, text="Built Y")
                        ],
                    ),
                ],
            ),
        ],
    )


@pytest.fixture
def table_tree() -> DocumentNode:
    """Tree with a table, used for type-order checks."""
    return DocumentNode(
        id="root",
        type=NodeType.ROOT,
        children=[
            DocumentNode(id="h1", type=NodeType.HEADER, text="Skills", level=1),
            DocumentNode(
                id="t1",
                type=NodeType.TABLE,
                children=[
                    DocumentNode(
                        id="r1",
                        type=NodeType.TABLE_ROW,
                        children=[
                            DocumentNode(id="c1", type=NodeType.TABLE_CELL, text="Python"),
                            DocumentNode(id="c2", type=NodeType.TABLE_CELL, text="8 years"),
                        ],
                    ),
                    DocumentNode(
                        id="r2",
                        type=NodeType.TABLE_ROW,
                        children=[
                            DocumentNode(id="c3", type=NodeType.TABLE_CELL, text="Go"),
                            DocumentNode(id="c4", type=NodeType.TABLE_CELL, text="3 years"),
                        ],
                    ),
                ],
            ),
            DocumentNode(id="h2", type=NodeType.HEADER, text="Education", level=1),
            DocumentNode(id="p1", type=NodeType.PARAGRAPH, text="BSc Computer Science"),
        ],
    )


@pytest.fixture(scope="session")
def sample_pdf_bytes() -> bytes:
    """A small resume-like PDF with a text layer."""
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Experience", fontsize=24, fontname="helv")
    page.insert_text(
        (72, 150),
        "Worked at X as a backend engineer on the payments platform.",
        fontsize=12,
        fontname="helv",
    )
    page.insert_text((72, 220), "- Built Y", fontsize=12, fontname="helv")
    page.insert_text((72, 240), "- Shipped Z", fontsize=12, fontname="helv")
    pdf_bytes = doc.tobytes()
    doc.close()
    return pdf_bytes


@pytest.fixture(scope="session")
def scanned_pdf_bytes() -> bytes:
    """A PDF without a text layer (simulates a scanned document)."""
    doc = fitz.open()
    page = doc.new_page()
    page.draw_rect(fitz.Rect(72, 72, 300, 300), color=(0, 0, 0), fill=(0.9, 0.9, 0.9))
    pdf_bytes = doc.tobytes()
    doc.close()
    return pdf_bytes


@pytest.fixture
def make_response():
    """Builder for delimited model responses."""
    return _build_response


@pytest.fixture
def deep_tree_text():
    """Factory for compact tree JSON with ``depth`` sections nested under the root."""

    def _build(depth: int) -> str:
        section = '{"type": "section", "text": "nested", "children": ['
        return '{"type": "root", "children": [' + section * depth + "]}" * depth + "]}"

    return _build
