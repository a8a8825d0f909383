"""Simulation contracts: the payload as a consumer would receive it."""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum


class PropertyOrigin(str, Enum):
    """Where a simulated property came from."""
    PRODUCER = "producer"
    BROKER_MAPPING = "broker_mapping"
    BROKER_ADDED = "broker_added"


class SimulatedProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    origin: PropertyOrigin
    expression: str = ""


class SimulatedContract(BaseModel):
    """Producer payload projected through the matched broker transformation."""
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(..., description="Event the payload is delivered for")
    producer_function: str
    transformation_event_id: Optional[str] = Field(
        None,
        description="Event id of the applied transformation ('*' for default, None when no broker was found)",
    )
    is_special_cased: bool = False
    properties: List[SimulatedProperty] = Field(default_factory=list)
    dropped_properties: List[str] = Field(
        default_factory=list,
        description="Producer properties removed by an exclusionary special case",
    )

    def property_names(self) -> List[str]:
        return [p.name for p in self.properties]

    def has_property(self, name: str) -> bool:
        """Top-level name presence only."""
        return any(p.name == name for p in self.properties)

    def get_property(self, name: str) -> Optional[SimulatedProperty]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None
