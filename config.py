"""Configuration settings for the flow contract verifier."""

# Load .env into os.environ so FLOW_CONTRACTS_* overrides work from a file
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Dict, List, Optional
from pathlib import Path


class Settings(BaseSettings):
    """Global settings for the flow contract verifier.

    Settings can be overridden via environment variables with FLOW_CONTRACTS_ prefix.
    Example: FLOW_CONTRACTS_MAX_WORKERS=8
    """

    # Source conventions
    broker_entry_point: str = Field(
        default="startSequence",
        description="Method producers call to hand a payload to the broker"
    )
    broker_routine: str = Field(
        default="prepareEventData",
        description="Broker method that shapes the payload for each event"
    )
    event_guard_subject: str = Field(
        default=r"[A-Za-z_$][\w$]*\.event",
        description="Regex for the dispatched event expression inside broker guards"
    )
    handler_prefix: str = Field(
        default="handle",
        description="Name prefix identifying exported consumer handlers"
    )
    ignored_producer_parameters: List[str] = Field(
        default_factory=lambda: ["conductorEventBus", "eventBus", "conductor"],
        description="Producer parameters that carry the bus, not payload data"
    )
    payload_parameter_names: List[str] = Field(
        default_factory=lambda: ["data", "eventData", "payload", "sequenceData", "context"],
        description="Parameter names that usually carry the event payload"
    )

    # Discovery
    broker_path: Optional[str] = Field(
        default=None,
        description="Explicit broker file; searched under the module root when unset"
    )
    excluded_dirs: List[str] = Field(
        default_factory=lambda: ["node_modules", "dist", "build", "coverage", ".git"],
        description="Directory names never scanned"
    )

    # Resource bounds
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used for per-file extraction"
    )
    file_read_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds to wait on each file once result collection reaches it; queue time counts"
    )
    max_file_bytes: int = Field(
        default=1_000_000,
        ge=1,
        description="Files larger than this are reported instead of parsed"
    )

    # Confidence scoring
    base_confidence: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Starting confidence for property-level findings"
    )
    domain_specific_bonus: float = Field(
        default=0.10,
        description="Added when the property name is domain-specific"
    )
    event_overlap_bonus: float = Field(
        default=0.05,
        description="Added when producer and consumer event ids overlap textually"
    )
    min_property_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Lower clamp for property-level findings"
    )
    confidence_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="No finding is ever reported below this confidence"
    )

    model_config = {
        "env_prefix": "FLOW_CONTRACTS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def get_broker_path(self) -> Optional[Path]:
        """Get the configured broker path as Path object, if any."""
        return Path(self.broker_path) if self.broker_path else None


# File-role to glob mapping used during discovery
ROLE_FILE_PATTERNS: Dict[str, List[str]] = {
    "producer": ["sequence.*", "index.*", "*sequence*.*", "*Sequence*.*"],
    "broker": ["*Conductor*.*", "*conductor*.*", "*broker*.*", "*Broker*.*"],
    "consumer": ["handlers.*", "*handler*.*", "*Handler*.*"],
}

SOURCE_EXTENSIONS: List[str] = [".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"]

# Broker-side value fragments that mint a property instead of forwarding one
BROKER_GENERATOR_FRAGMENTS: List[str] = [
    "executionContext",
    "Date.now()",
    "new Date(",
    "Math.random()",
    "performance.now()",
    "crypto.randomUUID(",
    "beat.",
    "`",
]

# Property names too generic to raise confidence
GENERIC_PROPERTY_TOKENS: List[str] = [
    "data", "event", "payload", "value", "item", "info", "args", "props", "options",
]


# Create singleton instance
settings = Settings()
