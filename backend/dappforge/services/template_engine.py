"""
Template engine for plugin code generation.

Syntax:
- {{ variable }}                                   interpolation (dotted paths)
- {{# if condition }}...{{ else }}...{{/ if }}      conditionals
- {{# unless condition }}...{{/ unless }}          negative conditionals
- {{# each items as item }}...{{/ each }}          loops (item, itemIndex,
                                                    itemFirst, itemLast)

Templates are parsed into a block tree first, so blocks nest freely. Nesting
is capped at MAX_TEMPLATE_DEPTH. Rendering is a pure function of
(template, context).
"""

from __future__ import annotations

import json
import re
import textwrap
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union


MAX_TEMPLATE_DEPTH = 32

_TAG_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_PATH_RE = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[\w$]+)*$")
_EACH_RE = re.compile(r"^#\s*each\s+(\S+)\s+as\s+([A-Za-z_]\w*)$")
_IF_RE = re.compile(r"^#\s*(if|unless)\s+(.+)$", re.DOTALL)
_CLOSE_RE = re.compile(r"^/\s*(each|if|unless)$")
_ELSE_RE = re.compile(r"^else$")
_COMPARISON_RE = re.compile(r"^(\S+?)\s*(===|!==|==|!=|>=|<=|>|<)\s*(\S+)$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


class TemplateError(Exception):
    """Base class for template failures."""


class TemplateSyntaxError(TemplateError):
    """Unbalanced, mismatched or unknown block tags."""


class TemplateDepthError(TemplateError):
    """Block nesting deeper than MAX_TEMPLATE_DEPTH."""


# ---------------------------------------------------------------------------
# Block tree
# ---------------------------------------------------------------------------


@dataclass
class _Text:
    text: str


@dataclass
class _Var:
    path: str


@dataclass
class _Conditional:
    condition: str
    negate: bool
    body: list["_Node"] = field(default_factory=list)
    else_body: list["_Node"] | None = None
    keyword: str = "if"


@dataclass
class _Loop:
    path: str
    item_name: str
    body: list["_Node"] = field(default_factory=list)


_Node = Union[_Text, _Var, _Conditional, _Loop]


def _parse(template: str) -> list[_Node]:
    root: list[_Node] = []
    # (block, list currently being appended to)
    stack: list[tuple[_Conditional | _Loop, list[_Node]]] = []
    current = root
    pos = 0

    for match in _TAG_RE.finditer(template):
        if match.start() > pos:
            current.append(_Text(template[pos:match.start()]))
        pos = match.end()
        body = match.group(1).strip()

        if body.startswith("#"):
            each = _EACH_RE.match(body)
            cond = _IF_RE.match(body)
            if each:
                block: _Conditional | _Loop = _Loop(path=each.group(1), item_name=each.group(2))
            elif cond:
                keyword = cond.group(1)
                block = _Conditional(
                    condition=cond.group(2).strip(),
                    negate=keyword == "unless",
                    keyword=keyword,
                )
            else:
                raise TemplateSyntaxError(f"Unknown block tag '{{{{{match.group(1)}}}}}'")
            if len(stack) >= MAX_TEMPLATE_DEPTH:
                raise TemplateDepthError(
                    f"Template blocks nested deeper than {MAX_TEMPLATE_DEPTH} levels"
                )
            current.append(block)
            stack.append((block, current))
            current = block.body
            continue

        if body.startswith("/"):
            close = _CLOSE_RE.match(body)
            if not close:
                raise TemplateSyntaxError(f"Unknown closing tag '{{{{{match.group(1)}}}}}'")
            if not stack:
                raise TemplateSyntaxError(f"Closing tag '{body}' has no matching opening block")
            block, parent = stack.pop()
            expected = "each" if isinstance(block, _Loop) else block.keyword
            if close.group(1) != expected:
                raise TemplateSyntaxError(
                    f"Closing tag '{body}' does not match open '{expected}' block"
                )
            current = parent
            continue

        if _ELSE_RE.match(body):
            if not stack or not isinstance(stack[-1][0], _Conditional):
                raise TemplateSyntaxError("'else' outside of an if/unless block")
            block = stack[-1][0]
            if block.else_body is not None:
                raise TemplateSyntaxError("Duplicate 'else' in one block")
            block.else_body = []
            current = block.else_body
            continue

        if _PATH_RE.match(body):
            current.append(_Var(body))
        else:
            # Not an expression (e.g. JSX style={{ ... }}): keep verbatim.
            current.append(_Text(match.group(0)))

    if stack:
        block = stack[-1][0]
        name = "each" if isinstance(block, _Loop) else block.keyword
        raise TemplateSyntaxError(f"Unclosed '{name}' block")

    if pos < len(template):
        current.append(_Text(template[pos:]))
    return root


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def get_path(context: Any, path: str) -> Any:
    """Resolve a dotted path against nested mappings, sequences and objects."""
    current = context
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            current = getattr(current, part, None)
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value)
    return str(value)


def _resolve_operand(token: str, context: Mapping[str, Any]) -> Any:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    if _NUMBER_RE.match(token):
        return float(token) if "." in token else int(token)
    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    return get_path(context, token)


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    return left == right


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: str, context: Mapping[str, Any]) -> bool:
    condition = condition.strip()
    if condition.startswith("!") and not condition.startswith("!="):
        return not evaluate_condition(condition[1:], context)

    comparison = _COMPARISON_RE.match(condition)
    if comparison:
        left_token, operator, right_token = comparison.groups()
        left = _resolve_operand(left_token, context)
        right = _resolve_operand(right_token, context)
        if operator in ("==", "==="):
            return _strict_equal(left, right)
        if operator in ("!=", "!=="):
            return not _strict_equal(left, right)
        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is None or right_num is None:
            return False
        if operator == ">":
            return left_num > right_num
        if operator == ">=":
            return left_num >= right_num
        if operator == "<":
            return left_num < right_num
        return left_num <= right_num

    return bool(get_path(context, condition))


def _render_nodes(nodes: list[_Node], context: Mapping[str, Any], depth: int) -> str:
    if depth > MAX_TEMPLATE_DEPTH:
        raise TemplateDepthError(f"Template rendering exceeded depth {MAX_TEMPLATE_DEPTH}")

    parts: list[str] = []
    for node in nodes:
        if isinstance(node, _Text):
            parts.append(node.text)
        elif isinstance(node, _Var):
            parts.append(_stringify(get_path(context, node.path)))
        elif isinstance(node, _Conditional):
            truthy = evaluate_condition(node.condition, context)
            if node.negate:
                truthy = not truthy
            if truthy:
                parts.append(_render_nodes(node.body, context, depth + 1))
            elif node.else_body is not None:
                parts.append(_render_nodes(node.else_body, context, depth + 1))
        else:
            items = get_path(context, node.path)
            if not isinstance(items, (list, tuple)):
                continue
            last = len(items) - 1
            for index, item in enumerate(items):
                scope = {
                    **context,
                    node.item_name: item,
                    f"{node.item_name}Index": index,
                    f"{node.item_name}First": index == 0,
                    f"{node.item_name}Last": index == last,
                }
                parts.append(_render_nodes(node.body, scope, depth + 1))
    return "".join(parts)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render a template against a context mapping."""
    return _render_nodes(_parse(template), context, 0)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def dedent(text: str) -> str:
    """Remove common leading indentation and surrounding blank lines."""
    return textwrap.dedent(text).strip("\n")
