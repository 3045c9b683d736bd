"""Recovery-tolerant parsing of model responses into a document tree.

The tree section and the extracted-data section are parsed independently.
Each runs the same fixed chain of strategies and stops at the first one that
produces a usable value:

1. strict   - the section body (minus Markdown fences) is valid JSON
2. repaired - the body was cut off; close the containers still open after
              the last complete value
3. scanned  - try every balanced ``{...}`` span in the body, largest first

When all three fail the tree degrades to a single ``other`` node holding the
whole response, and the data is reported absent. ``parse_response`` never
raises.
"""

import json
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from ..logger import logger
from . import deep_json
from .models import (
    CATALOG_TYPES,
    DataSource,
    DocumentNode,
    NodeType,
    TreeSource,
)
from .prompts import DATA_END, DATA_START, TREE_END, TREE_START
from .tree import iter_nodes

FALLBACK_NODE_ID = "fallback"
# Stands in for a missing id while the tree is being built
_PENDING_ID = "pending"

# How many cut points the truncation repair tries, counted from the end
MAX_REPAIR_ATTEMPTS = 50
# How many balanced spans the scanner decodes before giving up
MAX_SCAN_CANDIDATES = 200

_START_MARKERS = (TREE_START, DATA_START)
_CLOSERS = {"{": "}", "[": "]"}

_TYPE_SYNONYMS: dict[str, NodeType] = {
    "document": NodeType.ROOT,
    "doc": NodeType.ROOT,
    "heading": NodeType.HEADER,
    "title": NodeType.HEADER,
    "subtitle": NodeType.HEADER,
    "subheading": NodeType.HEADER,
    "para": NodeType.PARAGRAPH,
    "text": NodeType.PARAGRAPH,
    "body": NodeType.PARAGRAPH,
    "bulletlist": NodeType.LIST,
    "numberedlist": NodeType.LIST,
    "orderedlist": NodeType.LIST,
    "unorderedlist": NodeType.LIST,
    "item": NodeType.LIST_ITEM,
    "bullet": NodeType.LIST_ITEM,
    "row": NodeType.TABLE_ROW,
    "cell": NodeType.TABLE_CELL,
}


def _type_key(label: str) -> str:
    return re.sub(r"[\s_\-]", "", label).lower()


_TYPE_LOOKUP: dict[str, NodeType] = {
    **{_type_key(node_type.value): node_type for node_type in NodeType},
    **_TYPE_SYNONYMS,
}


@dataclass
class ParsedResponse:
    """Structural fields recovered from one model response."""

    document_tree: DocumentNode
    data: dict[str, Any] | None
    tree_source: TreeSource
    data_source: DataSource

    @property
    def degraded(self) -> bool:
        """True when the tree is the single-node fallback."""
        return self.tree_source == "fallback"


def normalize_node_type(label: Any) -> NodeType:
    """Map a model-supplied type label onto the closed vocabulary.

    Matching ignores case, spaces, underscores and hyphens, and accepts a
    few common synonyms. Anything else becomes ``other``.
    """
    if isinstance(label, NodeType):
        return label
    if not isinstance(label, str):
        return NodeType.OTHER
    return _TYPE_LOOKUP.get(_type_key(label), NodeType.OTHER)


# --- Section location ---


def _extract_section(raw: str, start: str, end: str) -> str | None:
    """Return the text between ``start`` and ``end`` markers, if present.

    A missing end marker means the response was truncated, so the section
    runs to the next start marker or the end of the text.
    """
    idx = raw.find(start)
    if idx == -1:
        return None
    body_start = idx + len(start)
    stop = raw.find(end, body_start)
    if stop == -1:
        next_starts = [
            pos for pos in (raw.find(m, body_start) for m in _START_MARKERS) if pos != -1
        ]
        stop = min(next_starts) if next_starts else len(raw)
    return raw[body_start:stop]


def _remove_section(raw: str, start: str, end: str) -> str:
    idx = raw.find(start)
    if idx == -1:
        return raw
    stop = raw.find(end, idx)
    if stop == -1:
        return raw[:idx]
    return raw[:idx] + raw[stop + len(end):]


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        newline = text.find("\n")
        text = text[newline + 1:] if newline != -1 else ""
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _loads(text: str) -> Any:
    """Decode JSON, returning None instead of raising."""
    try:
        return deep_json.loads(text)
    except ValueError:
        return None


# --- Parse strategies ---


def _strict_candidates(text: str) -> Iterator[Any]:
    value = _loads(_strip_fences(text))
    if value is not None:
        yield value


def _repaired_candidates(text: str) -> Iterator[Any]:
    """Recover a value from a body that was cut off or followed by prose."""
    openers = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not openers:
        return
    begin = min(openers)

    stack: list[str] = []
    cut_points: deque[tuple[int, tuple[str, ...]]] = deque(maxlen=MAX_REPAIR_ATTEMPTS)
    in_string = False
    escaped = False

    for pos in range(begin, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in "}]":
            if not stack or _CLOSERS[stack[-1]] != char:
                return
            stack.pop()
            if not stack:
                # A complete value, possibly followed by trailing prose
                value = _loads(text[begin:pos + 1])
                if value is not None:
                    yield value
                    return
                break
            cut_points.append((pos + 1, tuple(stack)))

    for cut, still_open in reversed(cut_points):
        closing = "".join(_CLOSERS[opener] for opener in reversed(still_open))
        value = _loads(text[begin:cut] + closing)
        if value is not None:
            yield value
            return


def _balanced_spans(text: str) -> list[tuple[int, int]]:
    """Find every balanced ``{...}`` span, ignoring braces inside strings."""
    spans = []
    opened: list[int] = []
    in_string = False
    escaped = False

    for pos, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            opened.append(pos)
        elif char == "}" and opened:
            spans.append((opened.pop(), pos + 1))
    return spans


def _scanned_candidates(text: str) -> Iterator[Any]:
    spans = sorted(_balanced_spans(text), key=lambda span: span[1] - span[0], reverse=True)
    for start, end in spans[:MAX_SCAN_CANDIDATES]:
        value = _loads(text[start:end])
        if value is not None:
            yield value


_STRATEGIES: list[tuple[str, Callable[[str], Iterator[Any]]]] = [
    ("strict", _strict_candidates),
    ("repaired", _repaired_candidates),
    ("scanned", _scanned_candidates),
]


def _run_strategies(
    text: str, accept: Callable[[Any], Any | None]
) -> tuple[Any, str] | None:
    """Return the first accepted value and the name of the strategy that found it."""
    for name, strategy in _STRATEGIES:
        for candidate in strategy(text):
            accepted = accept(candidate)
            if accepted is not None:
                return accepted, name
    return None


# --- Tree normalization ---


def _is_catalog(payload: dict) -> bool:
    return "type" not in payload and "children" not in payload and any(
        isinstance(payload.get(key), list) for key in CATALOG_TYPES
    )


def _looks_like_tree(payload: Any) -> bool:
    if isinstance(payload, dict):
        return "type" in payload or "children" in payload or _is_catalog(payload)
    if isinstance(payload, list):
        return bool(payload) and all(isinstance(item, dict) for item in payload)
    return False


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _coerce_level(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = re.fullmatch(r"\s*[hH]?(\d+)\s*", value)
        if match:
            return int(match.group(1))
    return None


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value) or None
    return None


def _raw_children(raw: dict, node_type: NodeType) -> list[dict]:
    children = raw.get("children")
    if isinstance(children, list):
        return [child for child in children if isinstance(child, dict)]
    items = raw.get("items")
    if node_type == NodeType.LIST and isinstance(items, list):
        return [
            {"type": "listItem", **item} if isinstance(item, dict) else {"type": "listItem", "text": item}
            for item in items
        ]
    return []


def _build_node(raw: dict, is_root: bool) -> tuple[DocumentNode, bool]:
    """Build one node without children.

    Returns:
        Tuple of (node, unnamed). An unnamed node carries a placeholder id
        until ``_assign_ids`` replaces it.
    """
    node_type = normalize_node_type(raw.get("type"))
    if is_root:
        node_type = NodeType.ROOT
    elif node_type == NodeType.ROOT:
        node_type = NodeType.SECTION

    text = raw["text"] if "text" in raw else raw.get("content")
    attributes = raw.get("attributes", raw.get("metadata"))
    node_id = _coerce_id(raw.get("id"))

    node = DocumentNode(
        id=node_id or _PENDING_ID,
        type=node_type,
        text=_coerce_text(text),
        level=_coerce_level(raw.get("level")),
        attributes=dict(attributes) if isinstance(attributes, dict) else {},
    )
    return node, node_id is None


def _assign_ids(root: DocumentNode, unnamed: set[int]) -> None:
    """Give every node a unique id, keeping the first use of each given id.

    Args:
        root: Tree to update in place.
        unnamed: ``id()`` of every node that came without a usable id.
    """
    nodes = [node for node, _ in iter_nodes(root)]
    taken = {node.id for node in nodes if id(node) not in unnamed}
    seen: set[str] = set()
    counter = 0

    if id(root) in unnamed and "root" not in taken:
        root.id = "root"
        taken.add("root")
        unnamed.discard(id(root))

    for node in nodes:
        if id(node) not in unnamed and node.id not in seen:
            seen.add(node.id)
            continue
        while f"n{counter}" in taken:
            counter += 1
        node.id = f"n{counter}"
        taken.add(node.id)
        seen.add(node.id)
        counter += 1


def _catalog_item_text(item: Any, *keys: str) -> str:
    if isinstance(item, dict):
        for key in keys:
            if key in item:
                return _coerce_text(item[key])
        return ""
    return _coerce_text(item)


def tree_payload_from_catalog(catalog: dict) -> dict:
    """Convert a flat element catalog into a tree payload.

    The catalog shape is ``{"headers": [{"level": 1, "text": ...}],
    "paragraphs": [...], "lists": [{"items": [...]}], "tables": [{"rows":
    [[...]]}], "sections": [...]}``. Reading order across categories is not
    recoverable, so the categories are laid out one after another.
    """
    children: list[dict] = []

    for header in catalog.get("headers") or []:
        children.append({
            "type": "header",
            "text": _catalog_item_text(header, "text", "content"),
            "level": header.get("level") if isinstance(header, dict) else None,
        })

    for paragraph in catalog.get("paragraphs") or []:
        children.append({
            "type": "paragraph",
            "text": _catalog_item_text(paragraph, "text", "content"),
        })

    for entry in catalog.get("lists") or []:
        items = entry.get("items", []) if isinstance(entry, dict) else entry
        if not isinstance(items, list):
            items = [items]
        children.append({
            "type": "list",
            "level": 1,
            "children": [{"type": "listItem", "text": _coerce_text(item)} for item in items],
        })

    for table in catalog.get("tables") or []:
        rows = table.get("rows", []) if isinstance(table, dict) else table
        if not isinstance(rows, list):
            rows = []
        children.append({
            "type": "table",
            "children": [
                {
                    "type": "tableRow",
                    "children": [
                        {"type": "tableCell", "text": _coerce_text(cell)}
                        for cell in (row if isinstance(row, list) else [row])
                    ],
                }
                for row in rows
            ],
        })

    for section in catalog.get("sections") or []:
        children.append({
            "type": "section",
            "text": _catalog_item_text(section, "title", "text", "name"),
        })

    return {"type": "root", "children": children}


def normalize_tree(payload: Any) -> DocumentNode:
    """Build a well-formed tree from decoded model JSON.

    Args:
        payload: A root node object, a non-root node (wrapped in a new root),
            an array of nodes, or a flat element catalog.

    Returns:
        Root ``DocumentNode`` satisfying the tree invariants.

    Raises:
        ValueError: If the payload is neither an object nor an array.
    """
    if isinstance(payload, list):
        payload = {"type": "root", "children": payload}
    if not isinstance(payload, dict):
        raise ValueError(f"tree payload must be an object or array, got {type(payload).__name__}")
    if _is_catalog(payload):
        payload = tree_payload_from_catalog(payload)
    if "type" not in payload:
        payload = {**payload, "type": "root"}
    if normalize_node_type(payload["type"]) != NodeType.ROOT:
        payload = {"type": "root", "children": [payload]}

    root, root_unnamed = _build_node(payload, is_root=True)
    unnamed = {id(root)} if root_unnamed else set()
    stack = [(root, payload)]
    while stack:
        node, raw = stack.pop()
        for raw_child in _raw_children(raw, node.type):
            child, child_unnamed = _build_node(raw_child, is_root=False)
            if child_unnamed:
                unnamed.add(id(child))
            node.children.append(child)
            stack.append((child, raw_child))

    _assign_ids(root, unnamed)
    return root


def parse_document_tree(json_text: str) -> DocumentNode:
    """Parse an exported tree (or any tree JSON) strictly.

    Raises:
        ValueError: If the text is not valid JSON or not a tree payload.
    """
    return normalize_tree(deep_json.loads(json_text))


def fallback_tree(raw_text: str) -> DocumentNode:
    """Single-node tree standing in for a response with no usable structure."""
    return DocumentNode(id=FALLBACK_NODE_ID, type=NodeType.OTHER, text=raw_text)


# --- Section parsers ---


def _accept_tree(candidate: Any) -> tuple[DocumentNode, bool] | None:
    """Normalize a tree candidate; the flag tells whether it was a catalog."""
    if not _looks_like_tree(candidate):
        return None
    is_catalog = isinstance(candidate, dict) and _is_catalog(candidate)
    try:
        return normalize_tree(candidate), is_catalog
    except (ValueError, RecursionError) as e:
        logger.debug("tree candidate rejected", error=str(e))
        return None


def _accept_data(candidate: Any) -> dict | None:
    return candidate if isinstance(candidate, dict) else None


def parse_tree_section(raw_text: str) -> tuple[DocumentNode, TreeSource]:
    """Recover the document tree, degrading to the fallback node."""
    section = _extract_section(raw_text, TREE_START, TREE_END)
    if section is None:
        # No markers: look through the whole response except the data section
        section = _remove_section(raw_text, DATA_START, DATA_END)

    found = _run_strategies(section, _accept_tree)
    if found is None:
        return fallback_tree(raw_text), "fallback"

    (tree, is_catalog), source = found
    return tree, "catalog" if is_catalog else source


def parse_data_section(raw_text: str) -> tuple[dict[str, Any] | None, DataSource]:
    """Recover the schema-extraction payload, or report it absent."""
    section = _extract_section(raw_text, DATA_START, DATA_END)
    if section is None:
        return None, "absent"

    found = _run_strategies(section, _accept_data)
    if found is None:
        return None, "absent"
    data, source = found
    return data, source


def parse_response(raw_text: str | None) -> ParsedResponse:
    """Convert a raw model response into a tree and optional extracted data.

    Never raises: an unusable tree section yields the fallback tree and an
    unusable data section yields ``data=None``.
    """
    raw_text = raw_text or ""

    document_tree, tree_source = parse_tree_section(raw_text)
    data, data_source = parse_data_section(raw_text)

    if tree_source == "fallback":
        logger.warn(
            "no usable document tree in response, using fallback node",
            raw_length=len(raw_text),
        )
    else:
        logger.debug("document tree parsed", tree_source=tree_source)

    if data_source == "absent" and DATA_START in raw_text:
        logger.warn("extracted data section present but unparsable")

    return ParsedResponse(
        document_tree=document_tree,
        data=data,
        tree_source=tree_source,
        data_source=data_source,
    )
