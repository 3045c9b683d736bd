"""JSON helpers that tolerate arbitrarily deep nesting.

The standard decoder recurses once per nested container and gives up a
little below the interpreter's recursion limit. Deeply nested model output
is still valid JSON, so ``loads`` falls back to an explicit-stack decoder
when the fast path hits that limit.
"""

import json
import re
from json.decoder import JSONDecodeError, scanstring
from typing import Any

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_NUMBER = re.compile(r"(-?(?:0|[1-9][0-9]*))(\.[0-9]+)?([eE][-+]?[0-9]+)?")

# Same literals the standard decoder accepts
_CONSTANTS: dict[str, Any] = {
    "null": None,
    "true": True,
    "false": False,
    "NaN": float("nan"),
    "Infinity": float("inf"),
    "-Infinity": float("-inf"),
}


def loads(text: str) -> Any:
    """Decode a JSON document of any nesting depth.

    Raises:
        json.JSONDecodeError: If the text is not valid JSON.
    """
    try:
        return json.loads(text)
    except RecursionError:
        return _loads_iterative(text)


def _skip_whitespace(text: str, pos: int) -> int:
    return _WHITESPACE.match(text, pos).end()


def _decode_scalar(text: str, pos: int) -> tuple[Any, int]:
    """Decode a string, number or literal starting at ``pos``."""
    if text[pos:pos + 1] == '"':
        return scanstring(text, pos + 1)
    for literal, value in _CONSTANTS.items():
        if text.startswith(literal, pos):
            return value, pos + len(literal)
    match = _NUMBER.match(text, pos)
    if match is None:
        raise JSONDecodeError("Expecting value", text, pos)
    integer, fraction, exponent = match.groups()
    if fraction or exponent:
        return float(integer + (fraction or "") + (exponent or "")), match.end()
    return int(integer), match.end()


def _decode_key(text: str, pos: int) -> tuple[str, int]:
    """Decode an object key and its colon; returns the key and the value position."""
    if text[pos:pos + 1] != '"':
        raise JSONDecodeError("Expecting property name enclosed in double quotes", text, pos)
    key, pos = scanstring(text, pos + 1)
    pos = _skip_whitespace(text, pos)
    if text[pos:pos + 1] != ":":
        raise JSONDecodeError("Expecting ':' delimiter", text, pos)
    return key, _skip_whitespace(text, pos + 1)


def _loads_iterative(text: str) -> Any:
    # Each frame is an open container and, for objects, the key being filled
    stack: list[list[Any]] = []
    pos = _skip_whitespace(text, 0)

    while True:
        char = text[pos:pos + 1]
        if char == "{":
            pos = _skip_whitespace(text, pos + 1)
            if text[pos:pos + 1] != "}":
                key, pos = _decode_key(text, pos)
                stack.append([{}, key])
                continue
            value, pos = {}, pos + 1
        elif char == "[":
            pos = _skip_whitespace(text, pos + 1)
            if text[pos:pos + 1] != "]":
                stack.append([[], None])
                continue
            value, pos = [], pos + 1
        else:
            value, pos = _decode_scalar(text, pos)

        # Attach the finished value, closing every container that ends here
        while True:
            if not stack:
                end = _skip_whitespace(text, pos)
                if end != len(text):
                    raise JSONDecodeError("Extra data", text, end)
                return value

            frame = stack[-1]
            container = frame[0]
            if isinstance(container, dict):
                container[frame[1]] = value
            else:
                container.append(value)

            pos = _skip_whitespace(text, pos)
            char = text[pos:pos + 1]
            if char == ",":
                pos = _skip_whitespace(text, pos + 1)
                if isinstance(container, dict):
                    frame[1], pos = _decode_key(text, pos)
                break
            if char == ("}" if isinstance(container, dict) else "]"):
                stack.pop()
                value, pos = container, pos + 1
                continue
            raise JSONDecodeError("Expecting ',' delimiter", text, pos)


def copy_json(value: Any) -> Any:
    """Copy nested dicts and lists without recursion; other values are shared."""
    if not isinstance(value, (dict, list)):
        return value

    result: Any = {} if isinstance(value, dict) else []
    stack = [(value, result)]
    while stack:
        source, target = stack.pop()
        items = source.items() if isinstance(source, dict) else enumerate(source)
        for key, item in items:
            if isinstance(item, (dict, list)):
                item_copy: Any = {} if isinstance(item, dict) else []
                stack.append((item, item_copy))
            else:
                item_copy = item
            if isinstance(target, dict):
                target[key] = item_copy
            else:
                target.append(item_copy)
    return result
