"""Broker extractor: special-cased and default payload transformations."""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from contracts import BrokerTransformation, ContractRole
from extractors.base_extractor import ContractExtractor, build_bindings
from extractors.source_text import (
    COMMENT,
    IDENTIFIER,
    FunctionDefinition,
    SourceText,
    find_method,
    parse_object_literal,
    references_identifier,
    split_top_level,
)
from config import BROKER_GENERATOR_FRAGMENTS, Settings


logger = logging.getLogger(__name__)

_IF_STATEMENT = re.compile(r"\bif\s*\(")
_RETURN = re.compile(r"\breturn\b")
_DELETE = re.compile(rf"\bdelete\s+{IDENTIFIER}\s*(?:\.\s*(?P<dotted>{IDENTIFIER})|\[\s*['\"](?P<keyed>[^'\"]+)['\"]\s*\])")
_REST_DESTRUCTURE = re.compile(rf"\b(?:const|let|var)\s*\{{(?P<pattern>[^{{}}]*)\.\.\.\s*{IDENTIFIER}\s*\}}\s*=")
_REMOVAL_COMMENT = re.compile(rf"//[^\n]*?\b(?:remove|exclude|skip)s?\s+(?P<name>{IDENTIFIER})", re.IGNORECASE)
_LOCAL_BINDING = re.compile(rf"\b(?:const|let|var)\s+(?P<name>{IDENTIFIER})\s*(?::[^=;]+)?=(?![=>])")
_LOCAL_DESTRUCTURE = re.compile(r"\b(?:const|let|var)\s*\{")


class BrokerExtractor(ContractExtractor):
    """Reads the broker's payload preparation routine.

    Every `if` whose guard compares the dispatched event with a string
    literal becomes a special-cased transformation. The final return that
    spreads the untouched input becomes the default transform ('*').
    """

    def __init__(self, config: Optional[Settings] = None, routine: Optional[str] = None):
        super().__init__(config)
        self.routine = routine or self.settings.broker_routine
        subject = self.settings.event_guard_subject
        self._guard_patterns = [
            re.compile(rf"(?<![\w$.]){subject}\s*===?\s*(['\"])(?P<event>[^'\"]+)\1"),
            re.compile(rf"(['\"])(?P<event>[^'\"]+)\1\s*===?\s*{subject}(?![\w$])"),
        ]

    @property
    def role(self) -> ContractRole:
        return ContractRole.BROKER

    def _extract(self, source: SourceText) -> List[BrokerTransformation]:
        routine = find_method(source, self.routine)
        if routine is None:
            logger.debug("No %s routine in %s", self.routine, source.file_path or "<text>")
            return []

        inputs = self._input_names(source, routine)
        body_start = routine.body_offset
        body_end = body_start + len(routine.body)

        transformations: List[BrokerTransformation] = []
        special_ranges: List[Tuple[int, int]] = []

        for match in _IF_STATEMENT.finditer(source.bare, body_start, body_end):
            paren = match.end() - 1
            close = source.find_matching(paren)
            guard = source.text[paren + 1:close].strip()
            event_ids = self._guard_events(guard)
            if not event_ids:
                continue

            block = self._block_range(source, close + 1)
            if block is None:
                continue
            special_ranges.append((match.start(), block[1]))

            returned = self._returned_object(source, block[0], block[1], exclude=())
            if returned is None:
                logger.debug("Special case for %s returns no object literal", event_ids)
                continue
            literal, _ = returned

            entries = parse_object_literal(literal)
            bindings = build_bindings(entries, sorted(inputs))
            added = [b.name for b in bindings if self._is_broker_minted(b.expression, inputs)]
            removed = self._removed_properties(source, block[0], block[1])
            condition = guard if "&&" in guard else None

            for event_id in event_ids:
                transformations.append(BrokerTransformation(
                    event_id=event_id,
                    is_special_cased=True,
                    condition=condition,
                    output_mappings={b.name: b.expression for b in bindings},
                    bindings=bindings,
                    added_properties=added,
                    removed_properties=removed,
                    file_path=source.file_path,
                    line_number=source.line_number(match.start()),
                ))

        default = self._default_transformation(source, body_start, body_end, special_ranges, inputs)
        if default is not None:
            transformations.append(default)

        return transformations

    def _guard_events(self, guard: str) -> List[str]:
        """Event ids an `if` guard compares the dispatched event against."""
        found = []
        for pattern in self._guard_patterns:
            for match in pattern.finditer(guard):
                found.append((match.start(), match.group("event")))
        events: List[str] = []
        for _, event_id in sorted(found):
            if event_id not in events:
                events.append(event_id)
        return events

    def _block_range(self, source: SourceText, after_guard: int) -> Optional[Tuple[int, int]]:
        """Offsets of the statement block following an if guard."""
        cursor = source.next_code_char(after_guard)
        if cursor == -1:
            return None
        if source.text[cursor] == "{":
            return cursor + 1, source.find_matching(cursor)
        # Single-statement branch: `if (...) return {...};`
        end = source.text.find(";", cursor)
        if end == -1:
            end = len(source.text)
        statement_return = _RETURN.match(source.bare, cursor)
        if statement_return:
            brace = source.next_code_char(statement_return.end())
            if brace != -1 and source.text[brace] == "{":
                end = source.find_matching(brace) + 1
        return cursor, end

    def _returned_object(
        self,
        source: SourceText,
        start: int,
        end: int,
        exclude: Sequence[Tuple[int, int]],
    ) -> Optional[Tuple[str, int]]:
        """Object literal returned by the last return in [start, end).

        Follows `const v = {...}; return v;` back to the local literal.
        """
        returns = [
            m for m in _RETURN.finditer(source.bare, start, end)
            if not any(low <= m.start() < high for low, high in exclude)
        ]
        if not returns:
            return None
        last = returns[-1]
        cursor = source.next_code_char(last.end())
        if cursor == -1:
            return None

        if source.text[cursor] == "{":
            return source.text[cursor:source.find_matching(cursor) + 1], last.start()

        name = re.match(IDENTIFIER, source.bare[cursor:])
        if not name:
            return None
        local = None
        for candidate in re.finditer(
            rf"\b(?:const|let|var)\s+{re.escape(name.group(0))}\s*(?::[^=;]+)?=\s*\{{",
            source.bare[start:last.start()],
        ):
            local = candidate
        if local is None:
            return None
        brace = start + local.end() - 1
        return source.text[brace:source.find_matching(brace) + 1], last.start()

    def _default_transformation(
        self,
        source: SourceText,
        start: int,
        end: int,
        special_ranges: List[Tuple[int, int]],
        inputs: Set[str],
    ) -> Optional[BrokerTransformation]:
        """The fall-through return outside special cases, when it spreads the input."""
        returned = self._returned_object(source, start, end, exclude=special_ranges)
        if returned is None:
            return None
        literal, return_offset = returned

        entries = parse_object_literal(literal)
        spreads_input = any(
            entry.is_spread and entry.value.strip() in inputs
            for entry in entries
        )
        if not spreads_input:
            logger.debug("Final return in %s does not spread its input; no default transform", self.routine)
            return None

        bindings = build_bindings(entries, sorted(inputs))
        return BrokerTransformation(
            event_id="*",
            is_special_cased=False,
            output_mappings={b.name: b.expression for b in bindings},
            bindings=bindings,
            # Every keyed entry sits on top of the spread input
            added_properties=[b.name for b in bindings],
            removed_properties=self._removed_properties(source, start, end, special_ranges),
            file_path=source.file_path,
            line_number=source.line_number(return_offset),
        )

    def _input_names(self, source: SourceText, routine: FunctionDefinition) -> Set[str]:
        """Payload parameters of the routine plus locals derived from them."""
        parameters = []
        for raw in split_top_level(routine.parameters):
            match = re.match(IDENTIFIER, raw)
            if match:
                parameters.append(match.group(0))

        payload_names = set(self.settings.payload_parameter_names)
        inputs = {p for p in parameters if p in payload_names} or set(parameters)

        body_start = routine.body_offset
        body_end = body_start + len(routine.body)
        for match in _LOCAL_BINDING.finditer(source.bare, body_start, body_end):
            value_end = source.text.find(";", match.end(), body_end)
            value = source.text[match.end():value_end if value_end != -1 else body_end]
            if any(references_identifier(value, name) for name in inputs):
                inputs.add(match.group("name"))

        for match in _LOCAL_DESTRUCTURE.finditer(source.bare, body_start, body_end):
            brace = match.end() - 1
            close = source.find_matching(brace)
            value_end = source.text.find(";", close, body_end)
            value = source.text[close + 1:value_end if value_end != -1 else body_end]
            if not any(references_identifier(value, name) for name in inputs):
                continue
            for part in split_top_level(source.text[brace + 1:close]):
                name = re.match(rf"(?:\.\.\.)?\s*(?:{IDENTIFIER}\s*:\s*)?(?P<local>{IDENTIFIER})", part)
                if name:
                    inputs.add(name.group("local"))

        return inputs

    def _is_broker_minted(self, expression: str, inputs: Set[str]) -> bool:
        """True when a returned value is created by the broker, not carried from the payload."""
        if any(fragment in expression for fragment in BROKER_GENERATOR_FRAGMENTS):
            return True
        return not any(references_identifier(expression, name) for name in inputs)

    def _removed_properties(
        self,
        source: SourceText,
        start: int,
        end: int,
        exclude: Sequence[Tuple[int, int]] = (),
    ) -> List[str]:
        """Properties a branch discards explicitly."""
        def outside(offset: int) -> bool:
            return not any(low <= offset < high for low, high in exclude)

        removed: List[str] = []

        def add(name: Optional[str]):
            if name and name not in removed:
                removed.append(name)

        for match in _DELETE.finditer(source.code, start, end):
            if outside(match.start()) and source.is_code(match.start()):
                add(match.group("dotted") or match.group("keyed"))

        for match in _REST_DESTRUCTURE.finditer(source.bare, start, end):
            if not outside(match.start()):
                continue
            for part in split_top_level(match.group("pattern")):
                name = re.match(IDENTIFIER, part)
                if name:
                    add(name.group(0))

        for match in _REMOVAL_COMMENT.finditer(source.text, start, end):
            if outside(match.start()) and source.labels[match.start()] == COMMENT:
                add(match.group("name"))

        return removed
