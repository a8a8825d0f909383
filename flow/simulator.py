"""Project a producer payload through the broker transformation for an event."""

import logging
from typing import Dict, List, Optional, Sequence

from contracts import (
    BrokerTransformation,
    ProducerContract,
    PropertyOrigin,
    SimulatedContract,
    SimulatedProperty,
)


logger = logging.getLogger(__name__)


class TransformationSimulator:
    """Computes the payload a consumer actually receives.

    Special-cased transformations are exclusionary: only their returned
    properties survive. The default transform is additive: every producer
    property survives and the broker's own properties are layered on top.
    """

    def __init__(self, transformations: Sequence[BrokerTransformation] = ()):
        self.transformations = list(transformations)
        self._special: Dict[str, BrokerTransformation] = {}
        self._default: Optional[BrokerTransformation] = None
        for transformation in self.transformations:
            if transformation.is_special_cased:
                # First special case for an event wins
                self._special.setdefault(transformation.event_id, transformation)
            elif self._default is None:
                self._default = transformation

    @property
    def has_broker(self) -> bool:
        return bool(self.transformations)

    def resolve(self, event_id: str) -> Optional[BrokerTransformation]:
        """Transformation applied to an event: exact special case, else the default."""
        return self._special.get(event_id) or self._default

    def simulate(self, producer: ProducerContract, event_id: Optional[str] = None) -> SimulatedContract:
        """Simulate the payload delivered for event_id (the producer's target by default)."""
        event_id = event_id or producer.target_event_id
        transformation = self.resolve(event_id)

        if transformation is None:
            if self.has_broker:
                logger.debug("No transformation for %s; payload passes through", event_id)
            return SimulatedContract(
                event_id=event_id,
                producer_function=producer.function_name,
                transformation_event_id=None,
                properties=self._producer_properties(producer),
            )

        if transformation.is_special_cased:
            return self._apply_special_case(producer, transformation, event_id)
        return self._apply_default(producer, transformation, event_id)

    def _apply_special_case(
        self,
        producer: ProducerContract,
        transformation: BrokerTransformation,
        event_id: str,
    ) -> SimulatedContract:
        added = set(transformation.added_properties)
        properties = [
            SimulatedProperty(
                name=name,
                origin=PropertyOrigin.BROKER_ADDED if name in added else PropertyOrigin.BROKER_MAPPING,
                expression=expression,
            )
            for name, expression in transformation.output_mappings.items()
        ]
        mapped = set(transformation.output_mappings)
        for name in transformation.added_properties:
            if name not in mapped:
                properties.append(SimulatedProperty(name=name, origin=PropertyOrigin.BROKER_ADDED))

        kept = {p.name for p in properties}
        dropped = [name for name in producer.property_names() if name not in kept]
        if dropped:
            logger.debug(
                "Special case %s drops %s from %s",
                transformation.event_id, dropped, producer.function_name,
            )

        return SimulatedContract(
            event_id=event_id,
            producer_function=producer.function_name,
            transformation_event_id=transformation.event_id,
            is_special_cased=True,
            properties=properties,
            dropped_properties=dropped,
        )

    def _apply_default(
        self,
        producer: ProducerContract,
        transformation: BrokerTransformation,
        event_id: str,
    ) -> SimulatedContract:
        properties = self._producer_properties(producer)
        index = {p.name: i for i, p in enumerate(properties)}
        for name in transformation.added_properties:
            added = SimulatedProperty(
                name=name,
                origin=PropertyOrigin.BROKER_ADDED,
                expression=transformation.output_mappings.get(name, ""),
            )
            if name in index:
                properties[index[name]] = added
            else:
                index[name] = len(properties)
                properties.append(added)

        return SimulatedContract(
            event_id=event_id,
            producer_function=producer.function_name,
            transformation_event_id=transformation.event_id,
            properties=properties,
        )

    def _producer_properties(self, producer: ProducerContract) -> List[SimulatedProperty]:
        return [
            SimulatedProperty(name=b.name, origin=PropertyOrigin.PRODUCER, expression=b.expression)
            for b in producer.produced_properties
        ]
