"""Role extractors turning JS/TS source text into flow contracts."""

from .base_extractor import ContractExtractor
from .producer_extractor import ProducerExtractor
from .broker_extractor import BrokerExtractor
from .consumer_extractor import ConsumerExtractor
from .expression_classifier import classify
from .factory import EXTRACTORS, get_extractor

__all__ = [
    "ContractExtractor",
    "ProducerExtractor",
    "BrokerExtractor",
    "ConsumerExtractor",
    "classify",
    "EXTRACTORS",
    "get_extractor",
]
