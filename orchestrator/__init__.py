"""Orchestrator module for flow verification runs."""

from .discovery import DiscoveredFiles, ModuleDiscovery
from .run_cache import CachedSource, RunCache
from .flow_orchestrator import (
    ExtractionResult,
    FlowOrchestrator,
    RunState,
    validate,
    validate_all,
)

__all__ = [
    "DiscoveredFiles",
    "ModuleDiscovery",
    "CachedSource",
    "RunCache",
    "ExtractionResult",
    "FlowOrchestrator",
    "RunState",
    "validate",
    "validate_all",
]
