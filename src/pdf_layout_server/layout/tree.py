"""Pure functions over a document tree.

Traversals use an explicit stack so that deeply nested model output cannot
exhaust the interpreter's recursion limit. None of these functions mutate
the tree they are given.
"""

import json
from collections import Counter
from typing import Any, Iterator

from .deep_json import copy_json
from .models import CATALOG_TYPES, DocumentNode, ExtractedElements, NodeType

PREVIEW_LENGTH = 80
INDENT = "  "
BULLET = "• "


def iter_nodes(root: DocumentNode) -> Iterator[tuple[DocumentNode, int]]:
    """Yield ``(node, depth)`` pairs in pre-order (document reading order)."""
    stack: list[tuple[DocumentNode, int]] = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        # Reversed so the first child is popped first
        for child in reversed(node.children):
            stack.append((child, depth + 1))


def _preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    collapsed = " ".join(text.split())
    if len(collapsed) > length:
        return collapsed[:length] + "..."
    return collapsed


def print_document_tree(root: DocumentNode) -> str:
    """Render the tree as indented text, one line per node.

    Example:
        root
          header (level 1): Experience
          section
            paragraph: Worked at X
    """
    lines = []
    for node, depth in iter_nodes(root):
        label = node.type.value
        if node.level is not None:
            label += f" (level {node.level})"
        preview = _preview(node.text)
        if preview:
            label += f": {preview}"
        lines.append(f"{INDENT * depth}{label}")
    return "\n".join(lines)


def tree_to_dict(root: DocumentNode) -> dict[str, Any]:
    """Convert a tree to plain dicts with canonical key order."""

    def _shell(node: DocumentNode) -> dict[str, Any]:
        return {
            "id": node.id,
            "type": node.type.value,
            "text": node.text,
            "level": node.level,
            "children": [],
            "attributes": dict(node.attributes),
        }

    result = _shell(root)
    stack = [(root, result)]
    while stack:
        node, out = stack.pop()
        for child in node.children:
            child_out = _shell(child)
            out["children"].append(child_out)
            stack.append((child, child_out))
    return result


def copy_tree(root: DocumentNode) -> DocumentNode:
    """Deep-copy a tree; attribute values are copied too."""

    def _detached(node: DocumentNode) -> DocumentNode:
        return DocumentNode(
            id=node.id,
            type=node.type,
            text=node.text,
            level=node.level,
            attributes=copy_json(node.attributes),
        )

    result = _detached(root)
    stack = [(root, result)]
    while stack:
        node, out = stack.pop()
        for child in node.children:
            child_out = _detached(child)
            out.children.append(child_out)
            stack.append((child, child_out))
    return result


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def export_tree_as_json(root: DocumentNode) -> str:
    """Serialize the full tree to its canonical JSON representation.

    The output is the wire format consumed by previews and by
    ``parse_document_tree``; parsing it and exporting again yields the
    same string. It is identical to ``json.dumps(tree_to_dict(root),
    indent=2, ensure_ascii=False)`` but written from an explicit stack.
    """
    parts: list[str] = []
    # Items are finished text chunks or (node, nesting level) pairs
    stack: list[Any] = [(root, 0)]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue

        node, nesting = item
        inner = INDENT * (nesting + 1)
        parts.append(
            "{\n"
            f'{inner}"id": {_encode(node.id)},\n'
            f'{inner}"type": {_encode(node.type.value)},\n'
            f'{inner}"text": {_encode(node.text)},\n'
            f'{inner}"level": {_encode(node.level)},\n'
            f'{inner}"children": '
        )
        attributes = json.dumps(node.attributes, indent=2, ensure_ascii=False)
        attributes = attributes.replace("\n", "\n" + inner)
        tail = f',\n{inner}"attributes": {attributes}\n{INDENT * nesting}}}'
        if not node.children:
            parts.append("[]" + tail)
            continue

        child_indent = INDENT * (nesting + 2)
        pending: list[Any] = ["[\n"]
        for idx, child in enumerate(node.children):
            if idx:
                pending.append(",\n")
            pending.append(child_indent)
            pending.append((child, nesting + 2))
        pending.append(f"\n{inner}]{tail}")
        # Reversed so chunks come off the stack in output order
        stack.extend(reversed(pending))
    return "".join(parts)


def find_elements_by_type(
    root: DocumentNode, node_type: NodeType | str
) -> list[DocumentNode]:
    """Collect every node of ``node_type`` in reading order.

    Unknown type names simply match nothing.
    """
    try:
        wanted = NodeType(node_type)
    except ValueError:
        return []
    return [node for node, _ in iter_nodes(root) if node.type == wanted]


def extract_text_from_tree(root: DocumentNode) -> str:
    """Concatenate node text in reading order, one line per text-bearing node.

    List items are prefixed with a bullet. Containers without text of their
    own (root, section, table) contribute only through their children.
    """
    lines = []
    for node, _ in iter_nodes(root):
        text = node.text.strip()
        if not text:
            continue
        if node.type == NodeType.LIST_ITEM:
            text = BULLET + text
        lines.append(text)
    return "\n".join(lines)


def count_elements(root: DocumentNode) -> int:
    """Total number of nodes, root included."""
    return sum(1 for _ in iter_nodes(root))


def count_by_type(root: DocumentNode) -> dict[str, int]:
    counts = Counter(node.type.value for node, _ in iter_nodes(root))
    return dict(counts)


def max_depth(root: DocumentNode) -> int:
    """Depth of the deepest node; a lone root has depth 0."""
    return max(depth for _, depth in iter_nodes(root))


def build_extracted_elements(root: DocumentNode) -> ExtractedElements:
    """Build the flattened element catalog as a detached snapshot.

    Entries come from one copy of the tree, so they share nodes with each
    other (a section's subtree holds its headers) but never with ``root``.
    """
    snapshot = copy_tree(root)
    catalog = {
        field_name: find_elements_by_type(snapshot, node_type)
        for field_name, node_type in CATALOG_TYPES.items()
    }
    return ExtractedElements(**catalog)
