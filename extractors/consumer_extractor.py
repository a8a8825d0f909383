"""Consumer extractor: what each exported handler reads from its payload."""

import logging
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from contracts import (
    ConsumerContract,
    ContractRole,
    NestedProperty,
    OptionalProperty,
    RequiredProperty,
)
from extractors.base_extractor import ContractExtractor
from extractors.source_text import (
    IDENTIFIER,
    FunctionDefinition,
    SourceText,
    expression_end,
    find_functions,
    parse_pattern,
    read_body,
    split_top_level,
    to_kebab_case,
)
from config import Settings


logger = logging.getLogger(__name__)

# Members that say nothing about the payload's shape
BUILTIN_MEMBERS = {
    "length", "toString", "valueOf", "map", "filter", "forEach", "reduce",
    "some", "every", "find", "findIndex", "includes", "indexOf", "join",
    "split", "trim", "slice", "splice", "push", "pop", "concat", "keys",
    "values", "entries", "toLowerCase", "toUpperCase", "startsWith",
    "endsWith", "replace", "hasOwnProperty", "then", "catch",
}

# Handler name suffixes that carry no event
_GENERIC_SUFFIXES = {"", "event", "events", "data", "message", "request", "payload"}

_INLINE_EVENT = [
    re.compile(r"""\bevent\s*:\s*(['"])(?P<event>[^'"]+)\1"""),
    re.compile(rf"""\b(?:{IDENTIFIER}\.)?eventType\s*===?\s*(['"])(?P<event>[^'"]+)\1"""),
]

_DESTRUCTURE = re.compile(r"\b(?:const|let|var)\s*\{")
_FALLBACK = re.compile(r"\s*(?:\|\||\?\?)\s*(?P<default>[^,;)\]}\n]*)")
_ASSIGNMENT = re.compile(r"\s*=(?![=>])")
_DESTRUCTURE_SOURCE = re.compile(r"\}\s*=\s*\Z")


class _Access(NamedTuple):
    chain: List[str]
    safe: bool
    fallback: Optional[str]
    offset: int


class ConsumerExtractor(ContractExtractor):
    """Infers handler requirements from how the payload is read.

    Destructured names, negative guards (`if (!data.x)`) and unconditional
    reads are required; reads with a fallback, behind safe navigation or
    behind a truthiness guard are optional; chains two or three levels deep
    become nested properties.
    """

    def __init__(self, config: Optional[Settings] = None, handler_prefix: Optional[str] = None):
        super().__init__(config)
        self.handler_prefix = handler_prefix if handler_prefix is not None else self.settings.handler_prefix

    @property
    def role(self) -> ContractRole:
        return ContractRole.CONSUMER

    def _extract(self, source: SourceText) -> List[ConsumerContract]:
        contracts: List[ConsumerContract] = []
        for handler in self._handlers(source):
            event_id = self.event_from_name(handler.name) or self._inline_event(handler)
            if event_id is None:
                logger.debug("Handler %s carries no event id; skipped", handler.name)
                continue
            contracts.append(self._analyze(source, handler, event_id))
        return contracts

    def _handlers(self, source: SourceText) -> List[FunctionDefinition]:
        """Exported handler functions, including methods of exported handler objects."""
        name_pattern = rf"{re.escape(self.handler_prefix)}[\w$]*"
        handlers = [d for d in find_functions(source, name_pattern) if d.exported]
        seen = {d.name for d in handlers}

        exported_object = re.compile(r"\bexport\s+(?:default\s*|(?:const|let|var)\s+[\w$]+\s*(?::[^=;]+)?=\s*)\{")
        method = re.compile(rf"(?<![\w$.])(?P<name>{name_pattern})\s*(?::\s*(?:async\s+)?(?:function\b\s*)?)?(?:async\s+)?\(")
        for obj in exported_object.finditer(source.bare):
            brace = obj.end() - 1
            end = source.find_matching(brace)
            for match in method.finditer(source.bare, brace + 1, end):
                if match.group("name") in seen:
                    continue
                read = read_body(source, match.end() - 1, is_arrow_allowed=True)
                if read is None:
                    continue
                parameters, body_start, body_end = read
                seen.add(match.group("name"))
                handlers.append(FunctionDefinition(
                    name=match.group("name"),
                    parameters=parameters,
                    body=source.text[body_start:body_end],
                    body_offset=body_start,
                    line_number=source.line_number(match.start()),
                    exported=True,
                    start=match.start(),
                    end=body_end + 1,
                ))

        handlers.sort(key=lambda d: d.start)
        return handlers

    def event_from_name(self, handler_name: str) -> Optional[str]:
        """handleCanvasElementSelected -> canvas-element-selected; None for generic names."""
        if not handler_name.startswith(self.handler_prefix):
            return None
        remainder = handler_name[len(self.handler_prefix):].lstrip("_")
        if remainder.lower() in _GENERIC_SUFFIXES:
            return None
        return to_kebab_case(remainder)

    def _inline_event(self, handler: FunctionDefinition) -> Optional[str]:
        body = SourceText(handler.body)
        for pattern in _INLINE_EVENT:
            match = pattern.search(body.code)
            if match:
                return match.group("event")
        return None

    def _analyze(self, source: SourceText, handler: FunctionDefinition, event_id: str) -> ConsumerContract:
        required: Dict[str, RequiredProperty] = {}
        optional: Dict[str, OptionalProperty] = {}
        nested: Dict[str, NestedProperty] = {}

        def require(prop: RequiredProperty):
            required.setdefault(prop.name, prop)

        def allow(prop: OptionalProperty):
            optional.setdefault(prop.name, prop)

        def add_nested(prop: NestedProperty):
            existing = nested.get(prop.full_path)
            if existing is None or (prop.is_required and not existing.is_required):
                nested[prop.full_path] = prop

        parameters = split_top_level(handler.parameters)
        first = parameters[0] if parameters else ""
        payload_name = ""

        if first.startswith("{"):
            self._apply_pattern(first, None, require, allow, add_nested)
        else:
            name = re.match(IDENTIFIER, first)
            payload_name = name.group(0) if name else ""

        body = SourceText(handler.body, source.file_path)

        if payload_name:
            for pattern, parent in self._body_destructures(body, payload_name):
                self._apply_pattern(pattern, parent, require, allow, add_nested)

            guarded = self._negative_guards(body, payload_name)
            for prop_name in guarded:
                require(RequiredProperty(name=prop_name, access_pattern="validation_check"))

            guards = self._truthy_guards(body, payload_name)
            for access in self._accesses(body, payload_name):
                root = access.chain[0]
                guarded_here = any(
                    name == root and start <= access.offset < end for name, start, end in guards
                )
                conditional = access.safe or access.fallback is not None or guarded_here
                if len(access.chain) == 1:
                    if conditional:
                        allow(OptionalProperty(
                            name=root,
                            has_fallback=access.fallback is not None,
                            default_value=access.fallback or None,
                        ))
                    else:
                        require(RequiredProperty(name=root))
                else:
                    if access.safe:
                        allow(OptionalProperty(name=root))
                    chain = access.chain[:3]
                    add_nested(NestedProperty(
                        parent_path=".".join(chain[:-1]),
                        name=chain[-1],
                        is_required=not conditional,
                    ))

        return ConsumerContract(
            handler_name=handler.name,
            event_id=event_id,
            payload_name=payload_name,
            required_properties=list(required.values()),
            optional_properties=[p for name, p in optional.items() if name not in required],
            nested_properties=list(nested.values()),
            file_path=source.file_path,
            line_number=handler.line_number,
        )

    def _apply_pattern(self, pattern: str, parent: Optional[str], require, allow, add_nested):
        """Record the names bound by a destructuring pattern of the payload."""
        for entry in parse_pattern(pattern):
            if parent:
                require(RequiredProperty(
                    name=entry.name,
                    is_nested=True,
                    nested_path=f"{parent}.{entry.name}",
                    access_pattern="destructuring",
                ))
            elif entry.default is not None:
                allow(OptionalProperty(name=entry.name, has_fallback=True, default_value=entry.default))
            else:
                require(RequiredProperty(name=entry.name, access_pattern="destructuring"))

            if entry.nested_pattern and not parent:
                for child in parse_pattern(entry.nested_pattern):
                    add_nested(NestedProperty(
                        parent_path=entry.name,
                        name=child.name,
                        is_required=entry.default is None and child.default is None,
                    ))

    def _body_destructures(self, body: SourceText, payload_name: str) -> List[Tuple[str, Optional[str]]]:
        """(pattern, parent path) for each `const {...} = payload[.parent]` in the body."""
        found: List[Tuple[str, Optional[str]]] = []
        for match in _DESTRUCTURE.finditer(body.bare):
            brace = match.end() - 1
            close = body.find_matching(brace)
            assignment = re.match(
                rf"\s*=\s*(?P<source>{re.escape(payload_name)}(?:\s*\.\s*{IDENTIFIER})*)(?:\s*(?:\|\||\?\?)\s*\{{\s*\}})?\s*(?:;|\n|$)",
                body.bare[close + 1:],
            )
            if not assignment:
                continue
            path = re.sub(r"\s+", "", assignment.group("source")).split(".")[1:]
            found.append((body.text[brace:close + 1], ".".join(path) or None))
        return found

    def _negative_guards(self, body: SourceText, payload_name: str) -> List[str]:
        """Names checked by `if (!payload.x)` style guards."""
        pattern = re.compile(
            rf"!\s*{re.escape(payload_name)}\s*(?:\?\.|\.)\s*(?P<name>{IDENTIFIER})(?!\s*(?:\?\.|\.|\[|\())"
        )
        names: List[str] = []
        for match in pattern.finditer(body.bare):
            if match.group("name") not in names:
                names.append(match.group("name"))
        return names

    def _truthy_guards(self, body: SourceText, payload_name: str) -> List[Tuple[str, int, int]]:
        """(root, start, end) for each truthiness test of a root.

        `if (payload.x)` covers its condition and the guarded statement;
        `payload.x && ...` covers the rest of that expression. Reads outside
        these ranges are unaffected.
        """
        escaped = re.escape(payload_name)
        if_guard = re.compile(rf"\bif\s*\(\s*{escaped}\s*(?:\?\.|\.)\s*(?P<name>{IDENTIFIER})\s*(?:\)|&&)")
        and_guard = re.compile(rf"(?<![!\w$.]){escaped}\s*(?:\?\.|\.)\s*(?P<name>{IDENTIFIER})\s*&&")

        guards: List[Tuple[str, int, int]] = []
        for match in if_guard.finditer(body.bare):
            close = body.find_matching(body.bare.index("(", match.start()))
            cursor = body.next_code_char(close + 1)
            if cursor == -1:
                end = len(body.text)
            elif body.text[cursor] == "{":
                end = body.find_matching(cursor) + 1
            else:
                end = expression_end(body, cursor) + 1
            guards.append((match.group("name"), match.start(), end))
        for match in and_guard.finditer(body.bare):
            guards.append((match.group("name"), match.start(), expression_end(body, match.end())))
        return guards

    def _accesses(self, body: SourceText, payload_name: str) -> List[_Access]:
        """Every read of a member chain on the payload variable."""
        escaped = re.escape(payload_name)
        start = re.compile(rf"(?<![\w$.]){escaped}\s*(?P<op>\?\.|\.)\s*(?P<name>{IDENTIFIER})")
        step = re.compile(rf"\s*(?P<op>\?\.|\.)\s*(?P<name>{IDENTIFIER})")
        keyed = re.compile(rf"(?<![\w$.]){escaped}\s*(?P<op>\?\.)?\[\s*(['\"])(?P<name>[^'\"]+)\2\s*\]")

        accesses: List[_Access] = []
        for match in start.finditer(body.bare):
            chain = [match.group("name")]
            safe = match.group("op") == "?."
            cursor = match.end()
            while True:
                following = step.match(body.bare, cursor)
                if not following:
                    break
                chain.append(following.group("name"))
                safe = safe or following.group("op") == "?."
                cursor = following.end()

            if re.match(r"\s*\(", body.bare[cursor:]):
                chain.pop()  # method call
            while chain and chain[-1] in BUILTIN_MEMBERS and len(chain) > 1:
                chain.pop()
            if not chain or (len(chain) == 1 and chain[0] in BUILTIN_MEMBERS):
                continue
            if _DESTRUCTURE_SOURCE.search(body.bare, 0, match.start()):
                continue
            if _ASSIGNMENT.match(body.bare, cursor):
                continue

            accesses.append(_Access(chain, safe, self._fallback(body, cursor), match.start()))

        for match in keyed.finditer(body.code):
            if not body.is_code(match.start()):
                continue
            cursor = match.end()
            if _ASSIGNMENT.match(body.bare, cursor):
                continue
            accesses.append(_Access(
                [match.group("name")],
                bool(match.group("op")),
                self._fallback(body, cursor),
                match.start(),
            ))

        accesses.sort(key=lambda a: a.offset)
        return accesses

    def _fallback(self, body: SourceText, cursor: int) -> Optional[str]:
        match = _FALLBACK.match(body.code, cursor)
        if not match:
            return None
        return match.group("default").strip()

