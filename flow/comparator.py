"""Compare simulated payloads against consumer requirements."""

import logging
from typing import List, NamedTuple, Optional, Sequence

from contracts import (
    ComparisonError,
    ConsumerContract,
    FindingKind,
    FlowFinding,
    ProducerContract,
    Severity,
)
from .recommendations import RecommendationBuilder
from .scoring import ConfidenceScorer, INFRASTRUCTURE_CONFIDENCE
from .simulator import TransformationSimulator


logger = logging.getLogger(__name__)


class ComparisonResult(NamedTuple):
    """Findings plus the bookkeeping the orchestrator reports on."""
    findings: List[FlowFinding]
    matched_pairs: int
    orphan_consumers: List[ConsumerContract]
    events: List[str]


class FlowComparator:
    """Checks every (producer, simulated payload, consumer) triple sharing an event.

    Presence is decided by top-level property name only.
    """

    def __init__(
        self,
        simulator: TransformationSimulator,
        scorer: Optional[ConfidenceScorer] = None,
        recommender: Optional[RecommendationBuilder] = None,
    ):
        self.simulator = simulator
        self.scorer = scorer or ConfidenceScorer()
        self.recommender = recommender or RecommendationBuilder()

    def compare(
        self,
        producers: Sequence[ProducerContract],
        consumers: Sequence[ConsumerContract],
    ) -> ComparisonResult:
        findings: List[FlowFinding] = []
        matched_pairs = 0
        orphan_consumers: List[ConsumerContract] = []
        matched_producers = set()
        events: List[str] = []

        for consumer in consumers:
            matches = [p for p in producers if p.covers_event(consumer.event_id)]
            if consumer.event_id not in events:
                events.append(consumer.event_id)

            if not matches:
                if consumer.expects_data():
                    orphan_consumers.append(consumer)
                    findings.append(self._orphan_handler(consumer))
                continue

            for producer in matches:
                matched_producers.add(id(producer))
                matched_pairs += 1
                try:
                    findings.extend(self.compare_pair(producer, consumer))
                except Exception as exc:
                    logger.warning(
                        "Comparison failed for %s -> %s: %s",
                        producer.function_name, consumer.handler_name, exc,
                    )
                    findings.append(self._comparison_failure(producer, consumer, exc))

        if consumers:
            for producer in producers:
                if id(producer) not in matched_producers:
                    findings.append(self._orphan_producer(producer))

        return ComparisonResult(findings, matched_pairs, orphan_consumers, events)

    def compare_pair(self, producer: ProducerContract, consumer: ConsumerContract) -> List[FlowFinding]:
        """Findings for one producer/consumer pair sharing an event.

        Raises:
            ComparisonError: If the pair does not actually share the event
        """
        if not producer.covers_event(consumer.event_id):
            raise ComparisonError(
                f"{producer.function_name} does not reach event '{consumer.event_id}'",
                file_path=consumer.file_path,
                line_number=consumer.line_number,
            )

        simulated = self.simulator.simulate(producer, consumer.event_id)
        transformation = self.simulator.resolve(consumer.event_id)
        findings: List[FlowFinding] = []

        for required in consumer.required_properties:
            if simulated.has_property(required.name):
                continue
            path = required.nested_path if required.is_nested and required.nested_path else required.name
            if required.is_nested and simulated.has_property(path.split(".")[0]):
                continue

            message = (
                f"Handler '{consumer.handler_name}' requires '{path}' but the payload from "
                f"'{producer.function_name}' for event '{consumer.event_id}' does not provide it"
            )
            if required.name in simulated.dropped_properties:
                message += " (dropped by a special-cased transformation)"

            findings.append(FlowFinding(
                kind=FindingKind.MISSING_PROPERTY,
                event_id=consumer.event_id,
                property_path=path,
                severity=Severity.CRITICAL,
                confidence=self.scorer.property_confidence(path, producer.target_event_id, consumer.event_id),
                message=message,
                suggested_fix=self.recommender.missing_property_fix(required.name, producer, transformation),
                file_path=consumer.file_path,
                line_number=consumer.line_number,
                producer_function=producer.function_name,
                handler_name=consumer.handler_name,
            ))

        for nested in consumer.nested_properties:
            if simulated.has_property(nested.root):
                continue
            findings.append(FlowFinding(
                kind=FindingKind.NESTED_MISMATCH,
                event_id=consumer.event_id,
                property_path=nested.full_path,
                severity=Severity.ERROR if nested.is_required else Severity.WARNING,
                confidence=self.scorer.property_confidence(
                    nested.full_path, producer.target_event_id, consumer.event_id,
                ),
                message=(
                    f"Handler '{consumer.handler_name}' reads '{nested.full_path}' but "
                    f"'{nested.root}' is absent from the payload of '{producer.function_name}'"
                ),
                suggested_fix=self.recommender.nested_fix(nested, producer),
                file_path=consumer.file_path,
                line_number=consumer.line_number,
                producer_function=producer.function_name,
                handler_name=consumer.handler_name,
            ))

        return findings

    def _orphan_handler(self, consumer: ConsumerContract) -> FlowFinding:
        return FlowFinding(
            kind=FindingKind.ORPHAN_HANDLER,
            event_id=consumer.event_id,
            severity=Severity.WARNING,
            confidence=self.scorer.orphan_confidence(FindingKind.ORPHAN_HANDLER),
            message=f"Handler '{consumer.handler_name}' expects data but no producer starts '{consumer.event_id}'",
            suggested_fix=self.recommender.orphan_handler_fix(consumer),
            file_path=consumer.file_path,
            line_number=consumer.line_number,
            handler_name=consumer.handler_name,
        )

    def _orphan_producer(self, producer: ProducerContract) -> FlowFinding:
        return FlowFinding(
            kind=FindingKind.ORPHAN_PRODUCER,
            event_id=producer.target_event_id,
            severity=Severity.WARNING,
            confidence=self.scorer.orphan_confidence(FindingKind.ORPHAN_PRODUCER),
            message=f"Producer '{producer.function_name}' starts '{producer.target_event_id}' but no handler consumes it",
            suggested_fix=self.recommender.orphan_producer_fix(producer),
            file_path=producer.file_path,
            line_number=producer.line_number,
            producer_function=producer.function_name,
        )

    def _comparison_failure(
        self,
        producer: ProducerContract,
        consumer: ConsumerContract,
        exc: Exception,
    ) -> FlowFinding:
        return FlowFinding(
            kind=FindingKind.COMPARISON_FAILURE,
            event_id=consumer.event_id,
            severity=Severity.WARNING,
            confidence=INFRASTRUCTURE_CONFIDENCE,
            message=f"Could not compare '{producer.function_name}' with '{consumer.handler_name}': {exc}",
            suggested_fix=self.recommender.infrastructure_fix(FindingKind.COMPARISON_FAILURE, consumer.file_path),
            file_path=consumer.file_path,
            line_number=consumer.line_number,
            producer_function=producer.function_name,
            handler_name=consumer.handler_name,
        )
