"""Classify the value expression of a payload property.

`classify` is a pure function over one expression's text. It is a heuristic,
not a grammar: it looks at the outermost shape of the expression and makes
no claim to handle every JavaScript construct. Known gaps include
`yield` expressions, arithmetic (always Literal) and type assertions other
than `as` and `!`.
"""

import re
from typing import Optional

from contracts import BindingKind
from extractors.source_text import IDENTIFIER, find_top_level, label_characters, CODE


_KEYWORD_LITERALS = {"true", "false", "null", "undefined", "NaN", "Infinity", "this"}

_MEMBER_PATH = re.compile(rf"^{IDENTIFIER}(?:\s*(?:\?\.|\.)\s*{IDENTIFIER}|\[\s*(?:'[^']*'|\"[^\"]*\"|\d+)\s*\])+$")
_IDENTIFIER_ONLY = re.compile(rf"^{IDENTIFIER}$")
_CALL_START = re.compile(rf"^(?:new\s+)?{IDENTIFIER}(?:\s*(?:\?\.|\.)\s*{IDENTIFIER})*\s*(?:<[^>()]*>)?\s*\(")
_TYPE_ASSERTION = re.compile(r"\s+as\s+[\w$.<>\[\]|& ]+$")


def _strip_wrappers(text: str) -> str:
    """Remove type assertions, non-null assertions and redundant outer parentheses."""
    expression = text.strip().rstrip(",;").strip()
    while True:
        previous = expression
        expression = _TYPE_ASSERTION.sub("", expression).strip()
        if expression.startswith("await "):
            expression = expression[len("await "):].strip()
        if expression.endswith("!") and not expression.endswith("!="):
            expression = expression[:-1].strip()
        if expression.startswith("(") and _closes_at_end(expression):
            expression = expression[1:-1].strip()
        if expression == previous:
            return expression


def _closes_at_end(expression: str) -> bool:
    """True when the '(' at offset 0 is closed by the final character."""
    labels = label_characters(expression)
    depth = 0
    for i, ch in enumerate(expression):
        if labels[i] != CODE:
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i == len(expression) - 1
    return False


def _is_conditional(expression: str) -> bool:
    for operator in ("||", "??"):
        if find_top_level(expression, operator) != -1:
            return True
    question = find_top_level(expression, "?")
    while question != -1:
        following = expression[question + 1:question + 2]
        if following not in (".", "?"):
            return True
        next_offset = find_top_level(expression[question + 2:], "?")
        question = -1 if next_offset == -1 else question + 2 + next_offset
    return False


def _is_call(expression: str) -> bool:
    """True when the whole expression is one call chain such as a.b(c).d."""
    if not _CALL_START.match(expression):
        return False
    labels = label_characters(expression)
    depth = 0
    for i, ch in enumerate(expression):
        if labels[i] != CODE:
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif depth == 0 and ch in "+-*/%=&|,":
            return False
    return True


def classify(text: str) -> BindingKind:
    """Classify a payload value expression.

    - backtick literal -> Template
    - `x || y`, `x ?? y`, `c ? a : b` -> Conditional
    - call expression (`Date.now()`, `new Id()`, `a.b(c)`) -> Generated
    - `a.b`, `a?.b`, `a['b']` -> PropertyAccess
    - bare identifier -> Parameter
    - anything else (strings, numbers, object/array literals, arithmetic) -> Literal
    """
    expression = _strip_wrappers(text)
    if not expression:
        return BindingKind.LITERAL

    if expression.startswith("`") and expression.endswith("`"):
        return BindingKind.TEMPLATE

    if _is_conditional(expression):
        return BindingKind.CONDITIONAL

    if _is_call(expression):
        return BindingKind.GENERATED

    if _MEMBER_PATH.match(expression):
        return BindingKind.PROPERTY_ACCESS

    if _IDENTIFIER_ONLY.match(expression) and expression not in _KEYWORD_LITERALS:
        return BindingKind.PARAMETER

    return BindingKind.LITERAL


def root_identifier(text: str) -> Optional[str]:
    """Leading identifier of a member path or call, e.g. 'element' for element.id."""
    expression = _strip_wrappers(text)
    match = re.match(rf"^(?:new\s+)?(?P<root>{IDENTIFIER})", expression)
    if not match or match.group("root") in _KEYWORD_LITERALS:
        return None
    return match.group("root")
