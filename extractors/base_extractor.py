"""Base extractor class that all role-specific extractors inherit from.

Every extractor:
- Receives one file's text (never reads files itself)
- Returns zero or more immutable contracts for its role
- Returns an empty list when nothing matches
- Raises ExtractionError only for structurally malformed input
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel

from contracts import ContractRole, PropertyBinding
from extractors.expression_classifier import classify, root_identifier
from extractors.source_text import (
    IDENTIFIER,
    ObjectEntry,
    SourceText,
    constant_to_kebab,
    references_identifier,
    unquote,
)
from config import Settings, settings as default_settings


logger = logging.getLogger(__name__)

_EVENT_CONSTANT = re.compile(rf"^(?:{IDENTIFIER}\.)*(?P<constant>[A-Z][A-Z0-9_]*)$")


class ContractExtractor(ABC):
    """Base class for Producer, Broker and Consumer extraction.

    One interface for all roles: `extract(text, file_path)` turns a file's
    text into that role's contracts.
    """

    def __init__(self, config: Optional[Settings] = None):
        """Initialize the extractor.

        Args:
            config: Settings override, defaults to the global settings
        """
        self.settings = config or default_settings

    @property
    @abstractmethod
    def role(self) -> ContractRole:
        """Return the role this extractor handles."""
        pass

    def extract(self, text: str, file_path: str = "") -> List[BaseModel]:
        """Extract this role's contracts from one file's text.

        Args:
            text: Full file content
            file_path: Path used for locations in the resulting contracts

        Returns:
            Contracts in source order; empty when the file has none

        Raises:
            ExtractionError: If the file is structurally malformed
        """
        source = SourceText(text, file_path)
        contracts = self._extract(source)
        logger.debug(
            "Extracted %d %s contract(s) from %s",
            len(contracts), self.role.value, file_path or "<text>",
        )
        return contracts

    @abstractmethod
    def _extract(self, source: SourceText) -> List[BaseModel]:
        pass


def build_bindings(entries: Iterable[ObjectEntry], parameter_names: Sequence[str] = ()) -> List[PropertyBinding]:
    """Classify the keyed entries of an object literal.

    Shared by producer payloads and broker return objects so both are
    classified identically. Spreads are skipped.
    """
    bindings: List[PropertyBinding] = []
    seen = set()
    for entry in entries:
        if entry.is_spread or entry.key is None or entry.key in seen:
            continue
        seen.add(entry.key)
        bindings.append(PropertyBinding(
            name=entry.key,
            kind=classify(entry.value),
            expression=entry.value,
            source_parameter=find_source_parameter(entry.value, parameter_names),
        ))
    return bindings


def find_source_parameter(expression: str, parameter_names: Sequence[str]) -> Optional[str]:
    """Find which input parameter a value expression derives from."""
    root = root_identifier(expression)
    if root and root in parameter_names:
        return root
    for name in parameter_names:
        if references_identifier(expression, name):
            return name
    return None


def resolve_event_id(argument: str, source: Optional[SourceText] = None) -> Optional[str]:
    """Turn an event argument into an event id.

    Handles string literals, EVENT_TYPES.SOME_EVENT constants (kebab-cased)
    and identifiers bound to a string literal elsewhere in the file.
    """
    literal = unquote(argument)
    if literal is not None:
        return literal

    expression = argument.strip()
    if source is not None and re.fullmatch(IDENTIFIER, expression):
        binding = re.search(
            rf"\b(?:const|let|var)\s+{re.escape(expression)}\s*(?::[^=;]+)?=\s*(['\"])(?P<value>[^'\"]+)\1",
            source.code,
        )
        if binding:
            return binding.group("value")

    constant = _EVENT_CONSTANT.match(expression)
    if constant and "." in expression:
        return constant_to_kebab(constant.group("constant"))
    return None
