"""Simulation, comparison and scoring of producer-to-consumer data flows."""

from .simulator import TransformationSimulator
from .comparator import ComparisonResult, FlowComparator
from .scoring import ConfidenceScorer, complexity_ratio, events_overlap
from .recommendations import RecommendationBuilder

__all__ = [
    "TransformationSimulator",
    "ComparisonResult",
    "FlowComparator",
    "ConfidenceScorer",
    "complexity_ratio",
    "events_overlap",
    "RecommendationBuilder",
]
