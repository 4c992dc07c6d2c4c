"""Best-effort parsing of an incomplete JSON document.

A streamed document is invalid on almost every prefix. `parse_partial`
closes what is open and drops what cannot be completed without guessing:

- an unterminated string value is closed (a trailing partial escape is dropped)
- an unterminated key, a key without a value, and a dangling comma are dropped
- a partial literal (``tru``) is dropped; a partial number is trimmed to
  its longest valid prefix (``1.`` -> ``1``)
- open objects and arrays are closed innermost-first

Anything that is already invalid (a stray character, a mismatched closer)
cannot become valid by appending text, so the result is UNPARSEABLE.

Example:
    >>> parse_partial('{"title": "Hel')
    {'title': 'Hel'}
    >>> parse_partial('{"tit')
    {}
    >>> parse_partial('{"a": [1, tr') == {"a": [1]}
    True
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Final

import orjson


class _Unparseable:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNPARSEABLE"

    def __bool__(self) -> bool:
        return False


UNPARSEABLE: Final = _Unparseable()

_WS = " \t\n\r"
_NUM_CHARS = frozenset("0123456789+-.eE")
_FULL_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = frozenset({"true", "false", "null"})
# Unescaped backslash starting an incomplete \uXXXX, or a lone high surrogate
_PARTIAL_UNICODE = re.compile(r"(\\+)u(?:[dD][89abAB][0-9a-fA-F]{2}|[0-9a-fA-F]{0,3})$")


@dataclass(slots=True)
class _Token:
    kind: str  # one of "{}[]:," or "str", "num", "lit"
    text: str
    complete: bool = True


@dataclass(slots=True)
class _Frame:
    kind: str  # "{" or "["
    state: str  # first | next | after_key | value | after_value


def _scan(text: str) -> list[_Token] | None:
    tokens: list[_Token] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch in _WS:
            i += 1
        elif ch in "{}[]:,":
            tokens.append(_Token(ch, ch))
            i += 1
        elif ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            if j < n:
                tokens.append(_Token("str", text[i:j + 1]))
                i = j + 1
            else:
                tokens.append(_Token("str", text[i:], complete=False))
                break
        elif ch == "-" or ch.isdigit():
            j = i
            while j < n and text[j] in _NUM_CHARS:
                j += 1
            tokens.append(_Token("num", text[i:j], complete=j < n))
            i = j
        elif ch.isalpha():
            j = i
            while j < n and text[j].isalpha():
                j += 1
            tokens.append(_Token("lit", text[i:j], complete=j < n))
            i = j
        else:
            return None
    return tokens


def _close_string(raw: str) -> str:
    if (m := _PARTIAL_UNICODE.search(raw)) and len(m.group(1)) % 2 == 1:
        raw = raw[:m.end(1) - 1]
    trailing = len(raw) - len(raw.rstrip("\\"))
    if trailing % 2 == 1:
        raw = raw[:-1]
    return raw + '"'


def _scalar(tok: _Token) -> str | None:
    """Text for a scalar value token, or None if it must be dropped/is invalid."""
    match tok.kind:
        case "str":
            return tok.text if tok.complete else _close_string(tok.text)
        case "num":
            text = tok.text if tok.complete else tok.text.rstrip("+-.eE")
            return text if _FULL_NUMBER.fullmatch(text) else None
        case _:
            return tok.text if tok.text in _LITERALS else None


def _expects_value(top: _Frame | None) -> bool:
    if top is None:
        return True
    if top.kind == "[":
        return top.state in ("first", "next")
    return top.state == "value"


def repair(text: str) -> str | None:
    """Return `text` completed into a syntactically closed document, or None."""
    tokens = _scan(text)
    if not tokens:
        return None
    out: list[str] = []
    stack: list[_Frame] = []
    root_done = False

    def value_done() -> None:
        nonlocal root_done
        if stack:
            stack[-1].state = "after_value"
        else:
            root_done = True

    for tok in tokens:
        if root_done:
            return None
        top = stack[-1] if stack else None
        match tok.kind:
            case "{" | "[":
                if not _expects_value(top):
                    return None
                stack.append(_Frame(tok.kind, "first"))
                out.append(tok.kind)
            case "}" | "]":
                opener = "{" if tok.kind == "}" else "["
                if top is None or top.kind != opener or top.state not in ("first", "after_value"):
                    return None
                stack.pop()
                out.append(tok.kind)
                value_done()
            case ":":
                if top is None or top.kind != "{" or top.state != "after_key":
                    return None
                top.state = "value"
                out.append(":")
            case ",":
                if top is None or top.state != "after_value":
                    return None
                top.state = "next"
                out.append(",")
            case _ if top is not None and top.kind == "{" and top.state in ("first", "next"):
                if tok.kind != "str":
                    return None
                if not tok.complete:
                    break
                out.append(tok.text)
                top.state = "after_key"
            case _:
                if not _expects_value(top):
                    return None
                if (value := _scalar(tok)) is None:
                    if tok.complete:
                        return None
                    break
                out.append(value)
                value_done()

    if stack:
        match stack[-1].state:
            case "after_key":
                del out[-1:]
            case "value":
                del out[-2:]
        # the dropped member may leave its separator behind
        if out and out[-1] == ",":
            del out[-1]
    out.extend("}" if f.kind == "{" else "]" for f in reversed(stack))
    return "".join(out) or None


def parse_partial(text: str) -> Any:
    """Parse an incomplete JSON document; UNPARSEABLE when no value can be recovered."""
    if (fixed := repair(text)) is None:
        return UNPARSEABLE
    try:
        return orjson.loads(fixed)
    except orjson.JSONDecodeError:
        return UNPARSEABLE


def open_serialization(value: Any) -> str:
    """Compact serialization with trailing closers and a final closing quote removed.

    The result is a prefix of the serialization of any value that extends
    `value` by appending to its last field, which makes it the unit of the
    prefix-consistent text wire format.
    """
    text = orjson.dumps(value).decode()
    stripped = text.rstrip("}]")
    if stripped.endswith('"'):
        stripped = stripped[:-1]
    return stripped
