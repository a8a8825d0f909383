"""Pydantic contracts for the flow contract verifier.

Every handoff between extraction, simulation, comparison and reporting is
typed through these contracts.
"""

from .extraction_contracts import (
    ContractRole,
    BindingKind,
    Parameter,
    PropertyBinding,
    ProducerContract,
    BrokerTransformation,
    RequiredProperty,
    OptionalProperty,
    NestedProperty,
    ConsumerContract,
)

from .simulation_contracts import (
    PropertyOrigin,
    SimulatedProperty,
    SimulatedContract,
)

from .report_contracts import (
    FindingKind,
    KIND_ORDER,
    PROPERTY_LEVEL_KINDS,
    Severity,
    ConfidenceLevel,
    FlowFinding,
    Recommendation,
    FlowStatistics,
    FlowReport,
    ValidationSummary,
    BatchReport,
)

from .errors import (
    FlowVerificationError,
    DiscoveryError,
    ExtractionError,
    ComparisonError,
)

__all__ = [
    # Extraction
    "ContractRole",
    "BindingKind",
    "Parameter",
    "PropertyBinding",
    "ProducerContract",
    "BrokerTransformation",
    "RequiredProperty",
    "OptionalProperty",
    "NestedProperty",
    "ConsumerContract",
    # Simulation
    "PropertyOrigin",
    "SimulatedProperty",
    "SimulatedContract",
    # Reporting
    "FindingKind",
    "KIND_ORDER",
    "PROPERTY_LEVEL_KINDS",
    "Severity",
    "ConfidenceLevel",
    "FlowFinding",
    "Recommendation",
    "FlowStatistics",
    "FlowReport",
    "ValidationSummary",
    "BatchReport",
    # Errors
    "FlowVerificationError",
    "DiscoveryError",
    "ExtractionError",
    "ComparisonError",
]
