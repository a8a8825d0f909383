"""Extraction contracts: what each role promises or expects about a payload."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from enum import Enum


class ContractRole(str, Enum):
    """Architectural role a source file plays in the flow."""
    PRODUCER = "producer"
    BROKER = "broker"
    CONSUMER = "consumer"


class BindingKind(str, Enum):
    """How a payload property gets its value."""
    PARAMETER = "parameter"  # bare identifier
    PROPERTY_ACCESS = "property_access"  # a.b
    LITERAL = "literal"  # anything else, including nested object literals
    GENERATED = "generated"  # call expression, e.g. Date.now()
    TEMPLATE = "template"  # backtick literal
    CONDITIONAL = "conditional"  # x || y, x ?? y, c ? a : b


class Parameter(BaseModel):
    """A producer input parameter."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Parameter name as written")
    inferred_type: str = Field(default="unknown", description="Coarse type: object, string, number, boolean, array, unknown")
    is_required: bool = Field(default=True, description="False for optional (?) or defaulted parameters")
    usage: str = Field(default="unused", description="direct, renamed, property_access, nested or unused")


class PropertyBinding(BaseModel):
    """One property of a literal payload object."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: BindingKind
    expression: str = Field(default="", description="Value expression text")
    source_parameter: Optional[str] = Field(None, description="Input parameter the value derives from")


class ProducerContract(BaseModel):
    """Payload guaranteed by a flow-start function."""
    model_config = ConfigDict(frozen=True)

    function_name: str
    target_event_id: str = Field(..., description="Event or sequence id passed to the broker")
    input_parameters: List[Parameter] = Field(default_factory=list)
    produced_properties: List[PropertyBinding] = Field(default_factory=list)
    dispatched_event_ids: List[str] = Field(
        default_factory=list,
        description="Beat events of the sequence definition named target_event_id",
    )
    file_path: str = ""
    line_number: int = 0

    def property_names(self) -> List[str]:
        """Names of every produced property, in source order."""
        return [p.name for p in self.produced_properties]

    def covers_event(self, event_id: str) -> bool:
        """Check if this producer's payload reaches the given event."""
        return event_id == self.target_event_id or event_id in self.dispatched_event_ids


class BrokerTransformation(BaseModel):
    """One branch of the broker's payload preparation."""
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(..., description="Exact event id, or '*' for the default transform")
    is_special_cased: bool = Field(..., description="True for branches keyed by event identity")
    condition: Optional[str] = Field(None, description="Guard text, verbatim")
    output_mappings: Dict[str, str] = Field(default_factory=dict, description="Returned property -> expression")
    bindings: List[PropertyBinding] = Field(default_factory=list)
    added_properties: List[str] = Field(default_factory=list, description="Properties minted by the broker")
    removed_properties: List[str] = Field(default_factory=list, description="Properties the branch explicitly discards")
    file_path: str = ""
    line_number: int = 0

    @property
    def is_default(self) -> bool:
        """True for the fall-through '*' transform."""
        return self.event_id == "*"


class RequiredProperty(BaseModel):
    """A property a handler cannot run without."""
    model_config = ConfigDict(frozen=True)

    name: str
    is_nested: bool = False
    nested_path: Optional[str] = Field(None, description="Full dotted path when reached through a parent")
    access_pattern: str = Field(default="property_access", description="destructuring, validation_check or property_access")


class OptionalProperty(BaseModel):
    """A property a handler tolerates being absent."""
    model_config = ConfigDict(frozen=True)

    name: str
    has_fallback: bool = False
    default_value: Optional[str] = None


class NestedProperty(BaseModel):
    """A chained access such as data.context.elementId."""
    model_config = ConfigDict(frozen=True)

    parent_path: str
    name: str
    is_required: bool = True

    @property
    def full_path(self) -> str:
        return f"{self.parent_path}.{self.name}"

    @property
    def root(self) -> str:
        return self.parent_path.split(".")[0]


class ConsumerContract(BaseModel):
    """Payload shape a terminal handler expects."""
    model_config = ConfigDict(frozen=True)

    handler_name: str
    event_id: str
    payload_name: str = Field(default="data", description="Variable the handler reads the payload from")
    required_properties: List[RequiredProperty] = Field(default_factory=list)
    optional_properties: List[OptionalProperty] = Field(default_factory=list)
    nested_properties: List[NestedProperty] = Field(default_factory=list)
    file_path: str = ""
    line_number: int = 0

    def expects_data(self) -> bool:
        """Check if the handler reads anything from its payload."""
        return bool(self.required_properties or self.nested_properties)
