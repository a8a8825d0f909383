"""Producer extractor: flow-start functions and the payload they hand to the broker."""

import logging
import re
from typing import Dict, List, Optional, Tuple

from contracts import BindingKind, ContractRole, Parameter, PropertyBinding, ProducerContract
from extractors.base_extractor import ContractExtractor, build_bindings, resolve_event_id
from extractors.expression_classifier import root_identifier
from extractors.source_text import (
    IDENTIFIER,
    FunctionDefinition,
    SourceText,
    constant_to_kebab,
    find_functions,
    parse_object_literal,
    parse_pattern,
    references_identifier,
    split_top_level,
    unquote,
)
from config import Settings


logger = logging.getLogger(__name__)

_SEQUENCE_OBJECT = re.compile(
    rf"\b(?:const|let|var)\s+(?P<name>{IDENTIFIER})\s*(?::[^=;]+)?=\s*\{{"
)
_BEAT_EVENT = re.compile(
    rf"""\bevent\s*:\s*(?:(?P<quote>['"])(?P<literal>[^'"]+)(?P=quote)|(?:{IDENTIFIER}\.)*(?P<constant>[A-Z][A-Z0-9_]*)\b)"""
)

_TYPE_ANNOTATIONS = {
    "string": "string",
    "number": "number",
    "boolean": "boolean",
    "any": "unknown",
    "unknown": "unknown",
}

# Suffix of a parameter name -> coarse type, checked before substrings
_NAME_SUFFIX_HINTS: List[Tuple[str, str]] = [
    ("Ids", "array"),
    ("Id", "string"),
    ("ID", "string"),
    ("Name", "string"),
    ("Count", "number"),
    ("Index", "number"),
]

# Substring of a lowercased parameter name -> coarse type
_NAME_TYPE_HINTS: List[Tuple[str, str]] = [
    ("element", "object"),
    ("event", "object"),
    ("data", "object"),
    ("position", "object"),
    ("bounds", "object"),
    ("options", "object"),
    ("config", "object"),
    ("id", "string"),
    ("type", "string"),
    ("name", "string"),
    ("count", "number"),
    ("index", "number"),
]


class ProducerExtractor(ContractExtractor):
    """Finds exported flow-start functions and their broker payloads.

    A flow-start function is any exported function whose body calls the
    broker entry point, e.g.

        export const startDragFlow = (conductorEventBus, element) => {
          conductorEventBus.startSequence('drag-start', { elementId: element.id });
        };
    """

    def __init__(self, config: Optional[Settings] = None, entry_point: Optional[str] = None):
        super().__init__(config)
        self.entry_point = entry_point or self.settings.broker_entry_point
        self._call_pattern = re.compile(rf"(?<![\w$]){re.escape(self.entry_point)}\s*\(")

    @property
    def role(self) -> ContractRole:
        return ContractRole.PRODUCER

    def _extract(self, source: SourceText) -> List[ProducerContract]:
        sequences = self.sequence_definitions(source)
        contracts: List[ProducerContract] = []

        for definition in self._outermost(source):
            if not definition.exported:
                continue

            call = self._find_entry_call(source, definition)
            if call is None:
                continue
            event_argument, payload_argument = call

            event_id = resolve_event_id(event_argument, source)
            if event_id is None:
                logger.debug("%s: event id %r is not statically known", definition.name, event_argument)
                continue

            payload = self._resolve_payload(source, definition, payload_argument)
            if payload is None:
                logger.debug("%s: payload for %s is not an object literal", definition.name, event_id)
                continue

            raw_parameters = self._parse_parameters(definition)
            names = [p.name for p in raw_parameters]
            bindings = build_bindings(parse_object_literal(payload), names)
            parameters = [
                p.model_copy(update={"usage": _parameter_usage(p.name, bindings)})
                for p in raw_parameters
            ]

            contracts.append(ProducerContract(
                function_name=definition.name,
                target_event_id=event_id,
                input_parameters=parameters,
                produced_properties=bindings,
                dispatched_event_ids=sequences.get(event_id, []),
                file_path=source.file_path,
                line_number=definition.line_number,
            ))

        return contracts

    def _outermost(self, source: SourceText) -> List[FunctionDefinition]:
        """Drop definitions nested inside another definition's body."""
        outermost: List[FunctionDefinition] = []
        for definition in find_functions(source):
            if outermost and definition.start < outermost[-1].end:
                continue
            outermost.append(definition)
        return outermost

    def _find_entry_call(
        self,
        source: SourceText,
        definition: FunctionDefinition,
    ) -> Optional[Tuple[str, Optional[str]]]:
        """Locate the broker entry call in a function body.

        Returns:
            (event argument, payload argument or None), or None if no call
        """
        body_end = definition.body_offset + len(definition.body)
        matches = list(self._call_pattern.finditer(source.bare, definition.body_offset, body_end))
        if not matches:
            return None
        if len(matches) > 1:
            logger.debug("%s calls %s %d times; using the first", definition.name, self.entry_point, len(matches))

        paren = matches[0].end() - 1
        close = source.find_matching(paren)
        arguments = split_top_level(source.text[paren + 1:close])
        if not arguments:
            return None
        return arguments[0], arguments[1] if len(arguments) > 1 else None

    def _resolve_payload(
        self,
        source: SourceText,
        definition: FunctionDefinition,
        payload_argument: Optional[str],
    ) -> Optional[str]:
        """Return the payload object literal text, following a local const if needed."""
        if payload_argument is None:
            return None
        payload = payload_argument.strip()
        if payload.startswith("{"):
            return payload

        if re.fullmatch(IDENTIFIER, payload):
            local = re.search(
                rf"\b(?:const|let|var)\s+{re.escape(payload)}\s*(?::[^=;]+)?=\s*\{{",
                source.bare[definition.body_offset:definition.body_offset + len(definition.body)],
            )
            if local:
                brace = definition.body_offset + local.end() - 1
                return source.text[brace:source.find_matching(brace) + 1]
        return None

    def _parse_parameters(self, definition: FunctionDefinition) -> List[Parameter]:
        """Parse the parameter list into typed parameters."""
        parameters: List[Parameter] = []
        ignored = set(self.settings.ignored_producer_parameters)

        for raw in split_top_level(definition.parameters):
            if raw.startswith("{"):
                for entry in parse_pattern(raw):
                    if entry.name not in ignored:
                        parameters.append(Parameter(
                            name=entry.name,
                            inferred_type=self._infer_type(entry.name, None, definition.body),
                            is_required=entry.default is None,
                        ))
                continue

            match = re.match(rf"^(?:\.\.\.)?(?P<name>{IDENTIFIER})(?P<optional>\?)?\s*(?::\s*(?P<annotation>[^=]+))?(?P<default>=.*)?$", raw, re.DOTALL)
            if not match or match.group("name") in ignored:
                continue
            name = match.group("name")
            parameters.append(Parameter(
                name=name,
                inferred_type=self._infer_type(name, match.group("annotation"), definition.body),
                is_required=not (match.group("optional") or match.group("default")),
            ))

        return parameters

    def _infer_type(self, name: str, annotation: Optional[str], body: str) -> str:
        """Coarse type from the annotation, else name heuristics refined by usage."""
        if annotation:
            annotation = annotation.strip()
            if annotation.endswith("[]") or annotation.startswith("Array<"):
                return "array"
            return _TYPE_ANNOTATIONS.get(annotation, "object")

        inferred = "unknown"
        lowered = name.lower()
        for suffix, coarse_type in _NAME_SUFFIX_HINTS:
            if name.endswith(suffix):
                inferred = coarse_type
                break
        else:
            for fragment, coarse_type in _NAME_TYPE_HINTS:
                if fragment in lowered:
                    inferred = coarse_type
                    break

        escaped = re.escape(name)
        typeof_check = re.search(rf"typeof\s+{escaped}\s*[!=]==?\s*['\"](?P<type>\w+)['\"]", body)
        if typeof_check:
            return typeof_check.group("type")
        if re.search(rf"Array\.isArray\(\s*{escaped}\s*\)", body):
            return "array"
        if inferred == "unknown" and re.search(rf"(?<![\w$.]){escaped}\??\.[A-Za-z_$]", body):
            return "object"
        return inferred

    def sequence_definitions(self, source: SourceText) -> Dict[str, List[str]]:
        """Map each sequence definition's name to the beat events it declares.

        A sequence definition is a top-level object literal with a string
        `name` entry; its events are every `event: '...'` or
        `event: EVENT_TYPES.X` found inside it.
        """
        sequences: Dict[str, List[str]] = {}
        for match in _SEQUENCE_OBJECT.finditer(source.bare):
            brace = match.end() - 1
            end = source.find_matching(brace)
            literal = source.text[brace:end + 1]

            name = None
            for entry in parse_object_literal(literal):
                if entry.key == "name":
                    name = unquote(entry.value)
                    break
            if not name:
                continue

            events = sequences.setdefault(name, [])
            for event in _BEAT_EVENT.finditer(source.code, brace, end):
                event_id = event.group("literal") or constant_to_kebab(event.group("constant"))
                if event_id not in events:
                    events.append(event_id)

        return sequences


def _parameter_usage(name: str, bindings: List[PropertyBinding]) -> str:
    """How a parameter reaches the payload: direct, renamed, property_access, nested or unused."""
    usages = set()
    for binding in bindings:
        expression = binding.expression.strip()
        if expression == name:
            usages.add("direct" if binding.name == name else "renamed")
        elif binding.kind == BindingKind.PROPERTY_ACCESS and root_identifier(expression) == name:
            usages.add("property_access")
        elif references_identifier(expression, name):
            usages.add("nested")

    for usage in ("direct", "renamed", "property_access", "nested"):
        if usage in usages:
            return usage
    return "unused"
