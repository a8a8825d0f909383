"""Text scanning helpers for JS/TS source.

There is no parser here. The helpers only know about string literals,
template literals, regex literals, comments and bracket nesting, which is
enough to cut function bodies and object literals out of real-world source
files. JSX text and unusual syntax can still confuse them.
"""

import re
from typing import Dict, List, NamedTuple, Optional, Set

from contracts import ExtractionError


IDENTIFIER = r"[A-Za-z_$][\w$]*"

OPENERS: Dict[str, str] = {"(": ")", "{": "}", "[": "]"}
CLOSERS: Dict[str, str] = {")": "(", "}": "{", "]": "["}

CODE = "code"
STRING = "string"
TEMPLATE = "template"
COMMENT = "comment"

# A '/' after one of these starts a regex literal rather than a division
_REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")
_REGEX_KEYWORDS = ("return", "typeof", "case", "in", "of", "delete", "void", "throw", "yield", "await")


def _starts_regex(text: str, labels: List[str], index: int) -> bool:
    k = index - 1
    while k >= 0 and (labels[k] == COMMENT or text[k].isspace()):
        k -= 1
    if k < 0:
        return True
    if text[k] in _REGEX_PRECEDERS:
        return True
    if text[k].isalpha():
        start = k
        while start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_$"):
            start -= 1
        return text[start:k + 1] in _REGEX_KEYWORDS
    return False


def _regex_end(text: str, index: int) -> Optional[int]:
    """Offset just past the regex literal (flags included) opening at index, or None."""
    n = len(text)
    j = index + 1
    in_class = False
    while j < n:
        ch = text[j]
        if ch == "\n":
            return None
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            j += 1
            while j < n and text[j].isalpha():
                j += 1
            return j
        j += 1
    return None


def label_characters(text: str) -> List[str]:
    """Label every character as code, string, template or comment.

    Code inside template substitutions (`${...}`) is labelled code. Regex
    literals are labelled as strings.
    """
    labels = [CODE] * len(text)
    n = len(text)
    i = 0
    in_template = False
    # Brace depth of each open ${ } substitution
    substitutions: List[int] = []

    while i < n:
        ch = text[i]

        if in_template:
            labels[i] = TEMPLATE
            if ch == "\\":
                if i + 1 < n:
                    labels[i + 1] = TEMPLATE
                i += 2
                continue
            if ch == "`":
                in_template = False
            elif ch == "$" and i + 1 < n and text[i + 1] == "{":
                labels[i + 1] = TEMPLATE
                substitutions.append(0)
                in_template = False
                i += 2
                continue
            i += 1
            continue

        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            for k in range(i, end):
                labels[k] = COMMENT
            i = end
            continue

        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            for k in range(i, end):
                labels[k] = COMMENT
            i = end
            continue

        if ch == "/" and _starts_regex(text, labels, i):
            end = _regex_end(text, i)
            if end is not None:
                for k in range(i, end):
                    labels[k] = STRING
                i = end
                continue

        if ch in ("'", '"'):
            j = i + 1
            while j < n and text[j] != ch and text[j] != "\n":
                if text[j] == "\\":
                    j += 1
                j += 1
            end = min(j + 1, n)
            for k in range(i, end):
                labels[k] = STRING
            i = end
            continue

        if ch == "`":
            labels[i] = TEMPLATE
            in_template = True
            i += 1
            continue

        if substitutions:
            if ch == "{":
                substitutions[-1] += 1
            elif ch == "}":
                if substitutions[-1] == 0:
                    substitutions.pop()
                    labels[i] = TEMPLATE
                    in_template = True
                    i += 1
                    continue
                substitutions[-1] -= 1

        i += 1

    return labels


def _mask(text: str, labels: List[str], hidden: Set[str]) -> str:
    return "".join(
        " " if label in hidden and ch != "\n" else ch
        for ch, label in zip(text, labels)
    )


class SourceText:
    """A file's text plus same-length masked views of it.

    `code` blanks out comments; `bare` additionally blanks out string and
    template literal text, so regexes over it only see executable code.
    Offsets are identical across all three views.
    """

    def __init__(self, text: str, file_path: str = ""):
        self.text = text
        self.file_path = file_path
        self.labels = label_characters(text)
        self.code = _mask(text, self.labels, {COMMENT})
        self.bare = _mask(text, self.labels, {COMMENT, STRING, TEMPLATE})

    def line_number(self, index: int) -> int:
        """1-based line number for a character offset."""
        return self.text.count("\n", 0, max(0, index)) + 1

    def is_code(self, index: int) -> bool:
        return 0 <= index < len(self.labels) and self.labels[index] == CODE

    def find_matching(self, open_index: int) -> int:
        """Return the offset of the bracket closing the one at open_index.

        Raises:
            ExtractionError: If brackets are unbalanced or crossed.
        """
        opener = self.text[open_index]
        if opener not in OPENERS:
            raise ValueError(f"Not an opening bracket: {opener!r}")

        stack: List[str] = []
        for i in range(open_index, len(self.text)):
            if self.labels[i] != CODE:
                continue
            ch = self.text[i]
            if ch in OPENERS:
                stack.append(ch)
            elif ch in CLOSERS:
                if not stack or stack[-1] != CLOSERS[ch]:
                    raise ExtractionError(
                        f"Mismatched '{ch}'",
                        file_path=self.file_path,
                        line_number=self.line_number(i),
                    )
                stack.pop()
                if not stack:
                    return i

        raise ExtractionError(
            f"Unbalanced '{opener}'",
            file_path=self.file_path,
            line_number=self.line_number(open_index),
        )

    def next_code_char(self, index: int) -> int:
        """Offset of the next non-whitespace code character at or after index, or -1."""
        for i in range(index, len(self.text)):
            if self.labels[i] == CODE and not self.text[i].isspace():
                return i
        return -1


class FunctionDefinition(NamedTuple):
    """A function found in source text."""
    name: str
    parameters: str
    body: str
    body_offset: int  # offset of body[0] in the file
    line_number: int
    exported: bool
    start: int
    end: int  # offset just past the body


_FUNCTION_DECLARATION = re.compile(
    rf"(?P<export>\bexport\s+(?:default\s+)?)?(?:\basync\s+)?\bfunction\b\s*\*?\s*(?P<name>{IDENTIFIER})\s*(?:<[^>(]*>)?\s*\("
)

_VARIABLE_FUNCTION = re.compile(
    rf"(?P<export>\bexport\s+)?\b(?:const|let|var)\s+(?P<name>{IDENTIFIER})\s*(?::[^=;]+)?=\s*(?:async\s+)?(?:function\b\s*\*?\s*(?:{IDENTIFIER})?\s*)?(?:<[^>(]*>)?\s*\("
)

_EXPORT_LIST = re.compile(r"\bexport\s*\{(?P<names>[^}]*)\}")
_COMMONJS_EXPORTS = re.compile(r"\bmodule\.exports\s*=\s*\{(?P<names>[^}]*)\}")
_COMMONJS_NAMED_EXPORT = re.compile(rf"\b(?:module\.)?exports\.(?P<name>{IDENTIFIER})\s*=")


def exported_names(source: SourceText) -> Set[str]:
    """Names exported through export lists or CommonJS assignments."""
    names: Set[str] = set()
    for pattern in (_EXPORT_LIST, _COMMONJS_EXPORTS):
        for match in pattern.finditer(source.bare):
            for part in match.group("names").split(","):
                local = part.strip().split(" as ")[0].split(":")[0].strip()
                if re.fullmatch(IDENTIFIER, local):
                    names.add(local)
    for match in _COMMONJS_NAMED_EXPORT.finditer(source.bare):
        names.add(match.group("name"))
    return names


def read_body(source: SourceText, paren_index: int, is_arrow_allowed: bool):
    """Read parameters and body starting at a parameter list's '('.

    Returns (parameters, body_start, body_end) or None when the parentheses
    belong to a call rather than a definition.
    """
    close_paren = source.find_matching(paren_index)
    parameters = source.text[paren_index + 1:close_paren]

    cursor = source.next_code_char(close_paren + 1)
    if cursor == -1:
        return None

    # Optional TypeScript return type annotation
    if source.text[cursor] == ":":
        brace = cursor
        while brace < len(source.text):
            if source.is_code(brace):
                ch = source.text[brace]
                if ch in "{;" or source.text.startswith("=>", brace):
                    break
                if ch in "([":
                    brace = source.find_matching(brace)
            brace += 1
        cursor = source.next_code_char(brace)
        if cursor == -1:
            return None

    if source.text.startswith("=>", cursor):
        if not is_arrow_allowed:
            return None
        cursor = source.next_code_char(cursor + 2)
        if cursor == -1:
            return None
        if source.text[cursor] != "{":
            return parameters, cursor, expression_end(source, cursor)

    if source.text[cursor] != "{":
        return None

    end = source.find_matching(cursor)
    return parameters, cursor + 1, end


def expression_end(source: SourceText, start: int) -> int:
    """End offset of the expression starting at start, such as an arrow body."""
    depth = 0
    i = start
    while i < len(source.text):
        if source.is_code(i):
            ch = source.text[i]
            if ch in OPENERS:
                depth += 1
            elif ch in CLOSERS:
                if depth == 0:
                    return i
                depth -= 1
            elif depth == 0 and (ch == ";" or source.text.startswith("\n\n", i)):
                return i
        i += 1
    return len(source.text)


def find_functions(source: SourceText, name_pattern: str = IDENTIFIER) -> List[FunctionDefinition]:
    """Find function declarations and function-valued variables.

    Args:
        source: Scanned source text
        name_pattern: Regex the function name must fully match

    Returns:
        Definitions in source order
    """
    extra_exports = exported_names(source)
    definitions: List[FunctionDefinition] = []
    seen_starts: Set[int] = set()

    for pattern, arrow_allowed in ((_FUNCTION_DECLARATION, False), (_VARIABLE_FUNCTION, True)):
        for match in pattern.finditer(source.bare):
            name = match.group("name")
            if not re.fullmatch(name_pattern, name) or match.start() in seen_starts:
                continue
            read = read_body(source, match.end() - 1, arrow_allowed)
            if read is None:
                continue
            parameters, body_start, body_end = read
            seen_starts.add(match.start())
            definitions.append(FunctionDefinition(
                name=name,
                parameters=parameters,
                body=source.text[body_start:body_end],
                body_offset=body_start,
                line_number=source.line_number(match.start()),
                exported=bool(match.group("export")) or name in extra_exports,
                start=match.start(),
                end=body_end + 1,
            ))

    definitions.sort(key=lambda d: d.start)
    return definitions


def find_method(source: SourceText, name: str) -> Optional[FunctionDefinition]:
    """Find the definition (not a call) of a named function or class method."""
    for definition in find_functions(source, re.escape(name)):
        return definition

    method = re.compile(rf"(?<![\w$.]){re.escape(name)}\s*(?:=\s*(?:async\s*)?)?\(")
    for match in method.finditer(source.bare):
        read = read_body(source, match.end() - 1, is_arrow_allowed=True)
        if read is None:
            continue
        parameters, body_start, body_end = read
        return FunctionDefinition(
            name=name,
            parameters=parameters,
            body=source.text[body_start:body_end],
            body_offset=body_start,
            line_number=source.line_number(match.start()),
            exported=False,
            start=match.start(),
            end=body_end + 1,
        )
    return None


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split on a separator that is not nested in brackets, strings or comments."""
    labels = label_characters(text)
    parts: List[str] = []
    depth = 0
    last = 0
    i = 0
    while i < len(text):
        if labels[i] == CODE:
            ch = text[i]
            if ch in OPENERS:
                depth += 1
            elif ch in CLOSERS:
                depth -= 1
            elif depth == 0 and text.startswith(separator, i):
                parts.append(text[last:i])
                i += len(separator)
                last = i
                continue
        i += 1
    parts.append(text[last:])
    return [p.strip() for p in parts if p.strip()]


def find_top_level(text: str, token: str) -> int:
    """Offset of the first occurrence of token outside brackets and literals, or -1."""
    labels = label_characters(text)
    depth = 0
    for i, ch in enumerate(text):
        if labels[i] != CODE:
            continue
        if depth == 0 and text.startswith(token, i):
            return i
        if ch in OPENERS:
            depth += 1
        elif ch in CLOSERS:
            depth -= 1
    return -1


class ObjectEntry(NamedTuple):
    """One entry of an object literal."""
    key: Optional[str]  # None for spreads
    value: str
    is_spread: bool = False


_QUOTED_KEY = re.compile(r"""^(['"])(?P<key>[^'"]+)\1$""")
_METHOD_ENTRY = re.compile(rf"^(?:async\s+|get\s+|set\s+)?(?P<key>{IDENTIFIER})\s*\(")


def parse_object_literal(text: str) -> List[ObjectEntry]:
    """Parse the top level of an object literal such as `{ a: b, ...c, d }`.

    Computed keys are skipped. Method shorthand is kept with the whole
    method text as its value.
    """
    stripped = _strip_comments(text).strip()
    if not stripped.startswith("{") or not stripped.endswith("}"):
        return []

    entries: List[ObjectEntry] = []
    for part in split_top_level(stripped[1:-1]):
        if part.startswith("..."):
            entries.append(ObjectEntry(key=None, value=part[3:].strip(), is_spread=True))
            continue

        method = _METHOD_ENTRY.match(part)
        colon = find_top_level(part, ":")
        if method and (colon == -1 or colon > method.end()):
            entries.append(ObjectEntry(key=method.group("key"), value=part))
            continue

        if colon == -1:
            if re.fullmatch(IDENTIFIER, part):
                entries.append(ObjectEntry(key=part, value=part))
            continue

        raw_key = part[:colon].strip()
        value = part[colon + 1:].strip()
        quoted = _QUOTED_KEY.match(raw_key)
        if quoted:
            entries.append(ObjectEntry(key=quoted.group("key"), value=value))
        elif re.fullmatch(IDENTIFIER, raw_key):
            entries.append(ObjectEntry(key=raw_key, value=value))

    return entries


def _strip_comments(text: str) -> str:
    labels = label_characters(text)
    return "".join(ch for ch, label in zip(text, labels) if label != COMMENT)


def references_identifier(expression: str, name: str) -> bool:
    """Check if an expression mentions an identifier as code, not inside a string."""
    bare = _mask(expression, label_characters(expression), {COMMENT, STRING, TEMPLATE})
    return re.search(rf"(?<![\w$.]){re.escape(name)}(?![\w$])", bare) is not None


def to_kebab_case(name: str) -> str:
    """canvasElementSelected / CanvasElementSelected / canvas_element -> canvas-element-selected."""
    result = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    result = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", result)
    result = result.replace("_", "-").lower()
    return re.sub(r"-+", "-", result).strip("-")


def constant_to_kebab(constant: str) -> str:
    """DRAG_START -> drag-start."""
    return constant.lower().replace("_", "-")


def unquote(text: str) -> Optional[str]:
    """Return the content of a single string literal, or None."""
    match = re.fullmatch(r"""\s*(['"`])(?P<value>[^'"`$]*)\1\s*""", text)
    return match.group("value") if match else None


class PatternEntry(NamedTuple):
    """One name bound by a destructuring pattern."""
    name: str
    default: Optional[str]
    nested_pattern: Optional[str]


def parse_pattern(pattern: str) -> List[PatternEntry]:
    """Parse a destructuring pattern such as `{ a, b = 1, c: { d }, ...rest }`.

    Anything after the closing brace (a type annotation or a default) is
    ignored. Rest elements and computed keys are skipped; renamed bindings
    report the payload-side key.
    """
    stripped = pattern.strip()
    if not stripped.startswith("{"):
        return []
    close = find_top_level(stripped[1:], "}")
    inner = stripped[1:close + 1] if close != -1 else stripped[1:]

    entries: List[PatternEntry] = []
    for part in split_top_level(inner):
        if part.startswith("..."):
            continue

        default = None
        equals = _default_assignment(part)
        if equals != -1:
            default = part[equals + 1:].strip()
            part = part[:equals].strip()

        colon = find_top_level(part, ":")
        key = (part if colon == -1 else part[:colon]).strip().strip("'\"")
        if not re.fullmatch(IDENTIFIER, key):
            continue

        nested_pattern = None
        if colon != -1:
            target = part[colon + 1:].strip()
            if target.startswith("{"):
                nested_pattern = target
        entries.append(PatternEntry(key, default, nested_pattern))
    return entries


def _default_assignment(part: str) -> int:
    """Offset of a top-level default `=` (not `==`, `=>` or a comparison), or -1."""
    offset = 0
    while offset < len(part):
        found = find_top_level(part[offset:], "=")
        if found == -1:
            return -1
        index = offset + found
        following = part[index + 1:index + 2]
        preceding = part[index - 1:index] if index else ""
        if following not in ("=", ">") and preceding not in ("=", "!", "<", ">"):
            return index
        offset = index + 2
    return -1
