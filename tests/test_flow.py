"""Tests for simulation, comparison, scoring and recommendations."""

from unittest.mock import MagicMock

import pytest

from config import Settings
from contracts import (
    BindingKind,
    BrokerTransformation,
    ConfidenceLevel,
    ConsumerContract,
    FindingKind,
    FlowFinding,
    FlowStatistics,
    NestedProperty,
    ProducerContract,
    PropertyBinding,
    PropertyOrigin,
    RequiredProperty,
    Severity,
)
from flow import (
    ConfidenceScorer,
    FlowComparator,
    RecommendationBuilder,
    TransformationSimulator,
    complexity_ratio,
    events_overlap,
)


def make_producer(event_id, names, function_name=None, dispatched=()):
    return ProducerContract(
        function_name=function_name or f"start{event_id.title().replace('-', '')}Flow",
        target_event_id=event_id,
        produced_properties=[
            PropertyBinding(name=name, kind=BindingKind.PARAMETER, expression=name)
            for name in names
        ],
        dispatched_event_ids=list(dispatched),
        file_path="sequence.js",
        line_number=3,
    )


def make_consumer(event_id, required=(), nested=(), handler_name="handleIt"):
    return ConsumerContract(
        handler_name=handler_name,
        event_id=event_id,
        required_properties=[RequiredProperty(name=name) for name in required],
        nested_properties=list(nested),
        file_path="handlers.js",
        line_number=12,
    )


DEFAULT_TRANSFORM = BrokerTransformation(
    event_id="*",
    is_special_cased=False,
    output_mappings={"sequenceId": "executionContext.id"},
    added_properties=["sequenceId"],
)

DROP_TRANSFORM = BrokerTransformation(
    event_id="drop",
    is_special_cased=True,
    output_mappings={"zoneId": "sequenceData.zoneId", "elementId": "sequenceData.elementId"},
)


class TestTransformationSimulator:
    """Test payload simulation through the broker."""

    def test_default_is_additive(self):
        """Test every producer property survives the default transform."""
        simulator = TransformationSimulator([DEFAULT_TRANSFORM])
        simulated = simulator.simulate(make_producer("drag-start", ["elementId", "timestamp"]))
        assert simulated.property_names() == ["elementId", "timestamp", "sequenceId"]
        assert simulated.get_property("sequenceId").origin == PropertyOrigin.BROKER_ADDED
        assert simulated.transformation_event_id == "*"
        assert not simulated.is_special_cased

    def test_default_overrides_same_name(self):
        """Test a broker property replaces a producer property of the same name."""
        simulator = TransformationSimulator([DEFAULT_TRANSFORM])
        simulated = simulator.simulate(make_producer("drag-start", ["sequenceId", "elementId"]))
        assert simulated.property_names() == ["sequenceId", "elementId"]
        assert simulated.get_property("sequenceId").expression == "executionContext.id"

    def test_special_case_is_exclusionary(self):
        """Test only the special case's returned properties survive."""
        simulator = TransformationSimulator([DROP_TRANSFORM, DEFAULT_TRANSFORM])
        simulated = simulator.simulate(make_producer("drop", ["elementId", "rawPointerEvent"]))
        assert sorted(simulated.property_names()) == ["elementId", "zoneId"]
        assert simulated.dropped_properties == ["rawPointerEvent"]
        assert simulated.is_special_cased
        assert simulated.get_property("zoneId").origin == PropertyOrigin.BROKER_MAPPING

    def test_other_events_use_default(self):
        """Test events without a special case get the default transform."""
        simulator = TransformationSimulator([DROP_TRANSFORM, DEFAULT_TRANSFORM])
        assert simulator.resolve("drag-start") is DEFAULT_TRANSFORM
        assert simulator.resolve("drop") is DROP_TRANSFORM

    def test_first_special_case_wins(self):
        """Test duplicate special cases keep the first."""
        later = DROP_TRANSFORM.model_copy(update={"output_mappings": {"other": "x"}})
        simulator = TransformationSimulator([DROP_TRANSFORM, later])
        assert simulator.resolve("drop") is DROP_TRANSFORM

    def test_no_broker_passes_through(self):
        """Test payloads pass through unchanged without a broker."""
        simulator = TransformationSimulator()
        simulated = simulator.simulate(make_producer("drop", ["elementId"]))
        assert not simulator.has_broker
        assert simulated.property_names() == ["elementId"]
        assert simulated.transformation_event_id is None

    def test_simulate_dispatched_event(self):
        """Test simulating a beat event other than the producer's target."""
        simulator = TransformationSimulator([DROP_TRANSFORM, DEFAULT_TRANSFORM])
        producer = make_producer("drag-start", ["elementId", "rawPointerEvent"], dispatched=["drop"])
        simulated = simulator.simulate(producer, "drop")
        assert simulated.event_id == "drop"
        assert simulated.is_special_cased


class TestFlowComparator:
    """Test producer/consumer comparison."""

    def compare(self, transformations, producers, consumers):
        return FlowComparator(TransformationSimulator(transformations)).compare(producers, consumers)

    def test_default_transform_satisfies_consumer(self):
        """Test a broker-added property satisfies a consumer."""
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [make_producer("drag-start", ["elementId", "timestamp"])],
            [make_consumer("drag-start", ["elementId", "sequenceId"])],
        )
        assert result.findings == []
        assert result.matched_pairs == 1
        assert result.events == ["drag-start"]

    def test_missing_property_is_critical(self):
        """Test a property nobody provides is one critical finding."""
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [make_producer("drag-start", ["elementId", "timestamp"])],
            [make_consumer("drag-start", ["elementId", "targetZone"])],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.MISSING_PROPERTY
        assert finding.property_path == "targetZone"
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == 1.0
        assert finding.file_path == "handlers.js"
        assert finding.line_number == 12
        assert "startDragStartFlow" in finding.suggested_fix

    def test_special_case_excludes_producer_property(self):
        """Test a special case satisfies a consumer that ignores the excluded property."""
        result = self.compare(
            [DROP_TRANSFORM, DEFAULT_TRANSFORM],
            [make_producer("drop", ["elementId", "rawPointerEvent"])],
            [make_consumer("drop", ["elementId", "zoneId"])],
        )
        assert result.findings == []

    def test_special_case_drop_is_reported(self):
        """Test requiring a property the special case drops is a finding."""
        result = self.compare(
            [DROP_TRANSFORM, DEFAULT_TRANSFORM],
            [make_producer("drop", ["elementId", "rawPointerEvent"])],
            [make_consumer("drop", ["elementId", "zoneId", "rawPointerEvent"])],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.MISSING_PROPERTY
        assert finding.property_path == "rawPointerEvent"
        assert "dropped by a special-cased transformation" in finding.message
        assert "special-cased transformation for event 'drop'" in finding.suggested_fix

    @pytest.mark.parametrize("is_required,severity", [
        (True, Severity.ERROR),
        (False, Severity.WARNING),
    ])
    def test_nested_mismatch(self, is_required, severity):
        """Test a nested read under an absent root is one nested mismatch."""
        nested = NestedProperty(parent_path="context", name="elementId", is_required=is_required)
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [make_producer("drag-start", ["elementId"])],
            [make_consumer("drag-start", nested=[nested])],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.NESTED_MISMATCH
        assert finding.property_path == "context.elementId"
        assert finding.severity == severity

    def test_nested_required_with_present_root(self):
        """Test nested required properties are satisfied by their root."""
        required = RequiredProperty(name="width", is_nested=True, nested_path="bounds.width")
        consumer = make_consumer("resize").model_copy(update={"required_properties": [required]})
        result = self.compare([], [make_producer("resize", ["bounds"])], [consumer])
        assert result.findings == []

    def test_orphan_handler(self):
        """Test a handler nothing produces for is an orphan when it expects data."""
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [make_producer("drag-start", ["elementId"])],
            [
                make_consumer("drag-start", ["elementId"]),
                make_consumer("zone-entered", ["zoneId"], handler_name="handleZoneEntered"),
                make_consumer("reset", handler_name="handleReset"),
            ],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.ORPHAN_HANDLER
        assert finding.severity == Severity.WARNING
        assert finding.confidence == 0.8
        assert finding.handler_name == "handleZoneEntered"
        assert [c.handler_name for c in result.orphan_consumers] == ["handleZoneEntered"]

    def test_orphan_producer(self):
        """Test a producer no handler consumes is reported."""
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [
                make_producer("drag-start", ["elementId"]),
                make_producer("drop", ["elementId"], function_name="startDropFlow"),
            ],
            [make_consumer("drag-start", ["elementId"])],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.ORPHAN_PRODUCER
        assert finding.producer_function == "startDropFlow"
        assert finding.confidence == 0.7
        assert finding.file_path == "sequence.js"

    def test_no_consumers_means_no_orphan_producers(self):
        """Test producers are not orphans when the module has no handlers at all."""
        result = self.compare([], [make_producer("drop", ["elementId"])], [])
        assert result.findings == []

    def test_dispatched_events_match(self):
        """Test a consumer of a beat event matches the sequence producer."""
        result = self.compare(
            [DEFAULT_TRANSFORM],
            [make_producer("drag-start", ["elementId"], dispatched=["element-moved"])],
            [make_consumer("element-moved", ["elementId", "sequenceId"])],
        )
        assert result.findings == []
        assert result.matched_pairs == 1

    def test_comparison_failure_is_contained(self):
        """Test an exception while comparing one pair becomes a warning."""
        simulator = MagicMock(spec=TransformationSimulator)
        simulator.simulate.side_effect = RuntimeError("boom")
        comparator = FlowComparator(simulator)
        result = comparator.compare(
            [make_producer("drop", ["elementId"])],
            [make_consumer("drop", ["elementId"])],
        )
        [finding] = result.findings
        assert finding.kind == FindingKind.COMPARISON_FAILURE
        assert finding.severity == Severity.WARNING
        assert finding.confidence == 1.0
        assert "boom" in finding.message

    def test_compare_pair_rejects_unrelated_events(self):
        """Test compare_pair refuses a pair that shares no event."""
        from contracts import ComparisonError

        comparator = FlowComparator(TransformationSimulator())
        with pytest.raises(ComparisonError):
            comparator.compare_pair(make_producer("drop", []), make_consumer("drag-start"))


class TestConfidenceScorer:
    """Test confidence scoring."""

    def test_property_confidence_bonuses(self):
        """Test base score plus domain and overlap bonuses."""
        scorer = ConfidenceScorer(Settings())
        assert scorer.property_confidence("targetZone", "drag-start", "drag-start") == 1.0
        assert scorer.property_confidence("targetZone", "drag", "drop") == 0.95
        assert scorer.property_confidence("data", "drag", "drop") == 0.85
        assert scorer.property_confidence("x", "drag-start", "drag-start") == 0.9

    def test_property_confidence_clamp(self):
        """Test the lower clamp for property findings."""
        scorer = ConfidenceScorer(Settings(base_confidence=0.5))
        assert scorer.property_confidence("data", "drag", "drop") == 0.7

    def test_floor_applies_last(self):
        """Test no score drops below the global floor."""
        scorer = ConfidenceScorer(Settings(base_confidence=0.5, min_property_confidence=0.5))
        assert scorer.property_confidence("data", "drag", "drop") == 0.6

    def test_orphan_confidence(self):
        """Test fixed orphan scores."""
        scorer = ConfidenceScorer(Settings())
        assert scorer.orphan_confidence(FindingKind.ORPHAN_HANDLER) == 0.8
        assert scorer.orphan_confidence(FindingKind.ORPHAN_PRODUCER) == 0.7

    def test_domain_specific_names(self):
        """Test domain-specific detection uses the leaf name."""
        scorer = ConfidenceScorer(Settings())
        assert scorer.is_domain_specific("elementId")
        assert scorer.is_domain_specific("context.zoneId")
        assert not scorer.is_domain_specific("id")
        assert not scorer.is_domain_specific("context.payload")

    @pytest.mark.parametrize("special,level", [
        (0, ConfidenceLevel.HIGH),
        (1, ConfidenceLevel.HIGH),
        (3, ConfidenceLevel.MEDIUM),
        (6, ConfidenceLevel.LOW),
        (9, ConfidenceLevel.UNKNOWN),
    ])
    def test_confidence_level(self, special, level):
        """Test report grading by complexity ratio."""
        stats = FlowStatistics(producer_count=5, transformation_count=5, special_case_count=special)
        assert ConfidenceScorer(Settings()).confidence_level(stats) == level

    def test_empty_module_is_unknown(self):
        """Test zero contracts grade as unknown."""
        assert ConfidenceScorer(Settings()).confidence_level(FlowStatistics()) == ConfidenceLevel.UNKNOWN
        assert complexity_ratio(FlowStatistics()) is None

    def test_complexity_ratio(self):
        """Test special cases and nested consumers both count."""
        stats = FlowStatistics(
            producer_count=2,
            transformation_count=2,
            special_case_count=1,
            consumer_count=2,
            nested_consumer_count=1,
        )
        assert complexity_ratio(stats) == pytest.approx(0.3333)

    @pytest.mark.parametrize("first,second,expected", [
        ("drag-start", "drag-start", True),
        ("drag-start", "drag-start-zone", True),
        ("element-moved", "element-dropped", True),
        ("drag", "drop", False),
        ("", "drop", False),
    ])
    def test_events_overlap(self, first, second, expected):
        """Test textual event overlap."""
        assert events_overlap(first, second) is expected


class TestRecommendationBuilder:
    """Test grouped recommendations."""

    def finding(self, kind, severity, **overrides):
        values = dict(kind=kind, event_id="drop", severity=severity, confidence=0.9, message="m")
        values.update(overrides)
        return FlowFinding(**values)

    def test_groups_by_kind(self):
        """Test one recommendation per kind, in kind order."""
        findings = [
            self.finding(FindingKind.NESTED_MISMATCH, Severity.ERROR),
            self.finding(FindingKind.MISSING_PROPERTY, Severity.CRITICAL, property_path="a"),
            self.finding(FindingKind.MISSING_PROPERTY, Severity.CRITICAL, property_path="b"),
        ]
        recommendations = RecommendationBuilder(Settings()).build(findings)
        assert [(r.title, r.count, r.priority) for r in recommendations] == [
            ("Missing Property Fix", 2, Severity.CRITICAL),
            ("Nested Property Fix", 1, Severity.ERROR),
        ]
        assert "2 instances" in recommendations[0].description

    def test_infrastructure_findings_merge(self):
        """Test infrastructure findings collapse into one recommendation."""
        findings = [
            self.finding(FindingKind.EXTRACTION_FAILURE, Severity.WARNING, confidence=1.0),
            self.finding(FindingKind.DISCOVERY_FAILURE, Severity.CRITICAL, confidence=1.0),
            self.finding(FindingKind.COMPARISON_FAILURE, Severity.WARNING, confidence=1.0),
        ]
        [recommendation] = RecommendationBuilder(Settings()).build(findings)
        assert recommendation.kind == FindingKind.DISCOVERY_FAILURE
        assert recommendation.priority == Severity.CRITICAL
        assert recommendation.count == 3

    def test_orphan_handler_gets_producer_template(self):
        """Test orphan handler recommendations carry a producer skeleton."""
        consumer = make_consumer(
            "zone-entered",
            ["zoneId"],
            nested=[NestedProperty(parent_path="bounds", name="width")],
            handler_name="handleZoneEntered",
        )
        findings = [self.finding(FindingKind.ORPHAN_HANDLER, Severity.WARNING, confidence=0.8)]
        [recommendation] = RecommendationBuilder(Settings()).build(findings, [consumer])
        template = recommendation.code_suggestion
        assert template.startswith("export const startZoneEnteredFlow = (conductorEventBus, data) => {")
        assert "conductorEventBus.startSequence('zone-entered', {" in template
        assert "    zoneId: data.zoneId," in template
        assert "    bounds: data.bounds," in template

    def test_no_findings_no_recommendations(self):
        """Test an empty finding list."""
        assert RecommendationBuilder(Settings()).build([]) == []
