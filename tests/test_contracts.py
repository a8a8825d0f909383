"""Tests for the Pydantic contracts.

Verifies that every contract can be instantiated with valid data
and that validation works correctly.
"""

import pytest
from pydantic import ValidationError

from contracts import (
    # Extraction
    BindingKind,
    BrokerTransformation,
    ConsumerContract,
    NestedProperty,
    Parameter,
    ProducerContract,
    PropertyBinding,
    RequiredProperty,
    # Simulation
    PropertyOrigin,
    SimulatedContract,
    SimulatedProperty,
    # Reporting
    ConfidenceLevel,
    FindingKind,
    FlowFinding,
    FlowReport,
    FlowStatistics,
    Recommendation,
    Severity,
    # Errors
    ComparisonError,
    DiscoveryError,
    ExtractionError,
    FlowVerificationError,
)


def make_finding(**overrides) -> FlowFinding:
    values = dict(
        kind=FindingKind.MISSING_PROPERTY,
        event_id="drag-start",
        property_path="elementId",
        severity=Severity.CRITICAL,
        confidence=0.9,
        message="missing",
        file_path="handlers.js",
        line_number=10,
    )
    values.update(overrides)
    return FlowFinding(**values)


class TestExtractionContracts:
    """Test producer, broker and consumer contracts."""

    def test_producer_contract(self):
        """Test creating a producer contract."""
        producer = ProducerContract(
            function_name="startDragFlow",
            target_event_id="drag-start",
            input_parameters=[Parameter(name="element", inferred_type="object")],
            produced_properties=[
                PropertyBinding(name="elementId", kind=BindingKind.PROPERTY_ACCESS, expression="element.id"),
                PropertyBinding(name="timestamp", kind=BindingKind.GENERATED, expression="Date.now()"),
            ],
            dispatched_event_ids=["element-moved"],
        )
        assert producer.property_names() == ["elementId", "timestamp"]
        assert producer.covers_event("drag-start")
        assert producer.covers_event("element-moved")
        assert not producer.covers_event("drop")

    def test_parameter_defaults(self):
        """Test parameter defaults."""
        param = Parameter(name="x")
        assert param.inferred_type == "unknown"
        assert param.is_required is True
        assert param.usage == "unused"

    def test_contracts_are_frozen(self):
        """Test that extracted contracts cannot be mutated."""
        producer = ProducerContract(function_name="f", target_event_id="e")
        with pytest.raises(ValidationError):
            producer.function_name = "g"

    def test_default_transformation(self):
        """Test the '*' transformation is recognised as the default."""
        default = BrokerTransformation(event_id="*", is_special_cased=False)
        special = BrokerTransformation(event_id="drop", is_special_cased=True)
        assert default.is_default
        assert not special.is_default

    def test_nested_property_paths(self):
        """Test nested property full path and root."""
        nested = NestedProperty(parent_path="context.position", name="x")
        assert nested.full_path == "context.position.x"
        assert nested.root == "context"

    def test_consumer_expects_data(self):
        """Test consumers without requirements expect nothing."""
        empty = ConsumerContract(handler_name="handleReset", event_id="reset")
        needy = ConsumerContract(
            handler_name="handleDrop",
            event_id="drop",
            required_properties=[RequiredProperty(name="zoneId")],
        )
        assert not empty.expects_data()
        assert needy.expects_data()


class TestSimulationContracts:
    """Test simulated payload contracts."""

    def test_property_lookup(self):
        """Test top-level presence checks."""
        simulated = SimulatedContract(
            event_id="drop",
            producer_function="startDropFlow",
            properties=[
                SimulatedProperty(name="elementId", origin=PropertyOrigin.BROKER_MAPPING),
                SimulatedProperty(name="sequenceId", origin=PropertyOrigin.BROKER_ADDED),
            ],
        )
        assert simulated.property_names() == ["elementId", "sequenceId"]
        assert simulated.has_property("sequenceId")
        assert not simulated.has_property("elementId.id")
        assert simulated.get_property("sequenceId").origin == PropertyOrigin.BROKER_ADDED
        assert simulated.get_property("zoneId") is None


class TestReportContracts:
    """Test findings, reports and summaries."""

    def test_confidence_floor_enforced(self):
        """Test that findings below the 0.6 floor are rejected."""
        with pytest.raises(ValidationError):
            make_finding(confidence=0.5)
        with pytest.raises(ValidationError):
            make_finding(confidence=1.1)

    def test_sort_key_order(self):
        """Test findings sort by file, line, kind, event then property."""
        findings = [
            make_finding(file_path="b.js", line_number=1),
            make_finding(file_path="a.js", line_number=5, kind=FindingKind.ORPHAN_HANDLER, property_path=""),
            make_finding(file_path="a.js", line_number=5, property_path="zoneId"),
            make_finding(file_path="a.js", line_number=5, property_path="elementId"),
        ]
        ordered = sorted(findings, key=lambda f: f.sort_key())
        assert [(f.file_path, f.kind, f.property_path) for f in ordered] == [
            ("a.js", FindingKind.MISSING_PROPERTY, "elementId"),
            ("a.js", FindingKind.MISSING_PROPERTY, "zoneId"),
            ("a.js", FindingKind.ORPHAN_HANDLER, ""),
            ("b.js", FindingKind.MISSING_PROPERTY, "elementId"),
        ]

    def test_report_counts(self):
        """Test per-severity counts and blocking detection."""
        report = FlowReport(
            module_name="canvas",
            module_path="/src/canvas",
            findings=[
                make_finding(),
                make_finding(kind=FindingKind.NESTED_MISMATCH, severity=Severity.ERROR, confidence=0.7),
                make_finding(kind=FindingKind.ORPHAN_HANDLER, severity=Severity.WARNING, confidence=0.8),
            ],
        )
        assert report.critical_count == 1
        assert report.error_count == 1
        assert report.warning_count == 1
        assert report.has_violations()
        assert report.has_blocking_findings()
        assert report.mean_confidence() == pytest.approx(0.8)

    def test_warning_only_report_is_not_blocking(self):
        """Test that warnings alone do not block."""
        report = FlowReport(
            module_name="m",
            module_path="/m",
            findings=[make_finding(kind=FindingKind.ORPHAN_PRODUCER, severity=Severity.WARNING, confidence=0.7)],
        )
        assert report.has_violations()
        assert not report.has_blocking_findings()

    def test_empty_report_defaults(self):
        """Test an empty report."""
        report = FlowReport(module_name="m", module_path="/m")
        assert report.confidence_level == ConfidenceLevel.UNKNOWN
        assert report.mean_confidence() is None
        assert not report.has_violations()

    def test_statistics_total(self):
        """Test total contract count."""
        stats = FlowStatistics(producer_count=2, transformation_count=3, consumer_count=4)
        assert stats.total_contracts == 9

    def test_recommendation_count_positive(self):
        """Test recommendations need at least one finding."""
        with pytest.raises(ValidationError):
            Recommendation(
                kind=FindingKind.MISSING_PROPERTY,
                title="t",
                description="d",
                priority=Severity.CRITICAL,
                count=0,
            )


class TestErrors:
    """Test the exception taxonomy."""

    def test_error_hierarchy(self):
        """Test every error derives from the base error."""
        for error_class in (DiscoveryError, ExtractionError, ComparisonError):
            assert issubclass(error_class, FlowVerificationError)

    def test_error_location(self):
        """Test errors carry their location."""
        error = ExtractionError("Unbalanced '{'", file_path="handlers.js", line_number=12)
        assert error.file_path == "handlers.js"
        assert error.line_number == 12
        assert "Unbalanced" in str(error)
