"""Confidence scoring for findings and reports.

Confidence is advisory: it says how sure the extraction and matching were,
never whether the finding is real.
"""

import re
from typing import Optional

from contracts import ConfidenceLevel, FindingKind, FlowStatistics
from config import GENERIC_PROPERTY_TOKENS, Settings, settings as default_settings


ORPHAN_HANDLER_CONFIDENCE = 0.8
ORPHAN_PRODUCER_CONFIDENCE = 0.7
INFRASTRUCTURE_CONFIDENCE = 1.0

# Complexity ratio upper bounds for each report confidence level
CONFIDENCE_THRESHOLDS = [
    (0.2, ConfidenceLevel.HIGH),
    (0.5, ConfidenceLevel.MEDIUM),
    (0.8, ConfidenceLevel.LOW),
]


class ConfidenceScorer:
    """Scores findings and grades whole reports."""

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    def property_confidence(self, property_name: str, producer_event: str, consumer_event: str) -> float:
        """Confidence for a MissingProperty or NestedMismatch finding."""
        score = self.settings.base_confidence
        if self.is_domain_specific(property_name):
            score += self.settings.domain_specific_bonus
        if events_overlap(producer_event, consumer_event):
            score += self.settings.event_overlap_bonus
        score = min(1.0, max(self.settings.min_property_confidence, score))
        return self.floor(score)

    def orphan_confidence(self, kind: FindingKind) -> float:
        if kind == FindingKind.ORPHAN_HANDLER:
            return self.floor(ORPHAN_HANDLER_CONFIDENCE)
        return self.floor(ORPHAN_PRODUCER_CONFIDENCE)

    def floor(self, score: float) -> float:
        """Apply the global floor and round away float noise."""
        return round(min(1.0, max(self.settings.confidence_floor, score)), 4)

    def is_domain_specific(self, property_name: str) -> bool:
        leaf = property_name.split(".")[-1]
        return len(leaf) > 3 and leaf.lower() not in GENERIC_PROPERTY_TOKENS

    def confidence_level(self, statistics: FlowStatistics) -> ConfidenceLevel:
        """Grade a report by how much of the module relies on hard-to-model constructs."""
        ratio = complexity_ratio(statistics)
        if ratio is None:
            return ConfidenceLevel.UNKNOWN
        for upper_bound, level in CONFIDENCE_THRESHOLDS:
            if ratio < upper_bound:
                return level
        return ConfidenceLevel.UNKNOWN


def complexity_ratio(statistics: FlowStatistics) -> Optional[float]:
    """(special cases + consumers with nested reads) / total contracts, None when empty."""
    total = statistics.total_contracts
    if total == 0:
        return None
    return round((statistics.special_case_count + statistics.nested_consumer_count) / total, 4)


def events_overlap(first: str, second: str) -> bool:
    """Check if two event ids overlap textually (containment or a shared word)."""
    a, b = first.lower(), second.lower()
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    words_a = {w for w in re.split(r"[^a-z0-9]+", a) if len(w) > 2}
    words_b = {w for w in re.split(r"[^a-z0-9]+", b) if len(w) > 2}
    return bool(words_a & words_b)
