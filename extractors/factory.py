"""Factory for creating role extractors."""

from typing import Dict, Optional, Type, Union

from config import Settings
from contracts import ContractRole
from .base_extractor import ContractExtractor
from .producer_extractor import ProducerExtractor
from .broker_extractor import BrokerExtractor
from .consumer_extractor import ConsumerExtractor


# Registry of available extractors
EXTRACTORS: Dict[ContractRole, Type[ContractExtractor]] = {
    ContractRole.PRODUCER: ProducerExtractor,
    ContractRole.BROKER: BrokerExtractor,
    ContractRole.CONSUMER: ConsumerExtractor,
}


def get_extractor(
    role: Union[ContractRole, str],
    config: Optional[Settings] = None,
) -> ContractExtractor:
    """Get the extractor for a role.

    Args:
        role: Contract role or its value (producer, broker, consumer)
        config: Settings override

    Returns:
        ContractExtractor instance

    Examples:
        get_extractor("producer").extract(text, "src/sequence.ts")
        get_extractor(ContractRole.CONSUMER)
    """
    try:
        key = ContractRole(role)
    except ValueError:
        raise ValueError(
            f"Unknown role: {role}. "
            f"Available: {[r.value for r in EXTRACTORS]}"
        ) from None
    return EXTRACTORS[key](config)
