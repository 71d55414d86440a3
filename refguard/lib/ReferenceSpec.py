from dataclasses import dataclass, field
from enum import Enum


class Cardinality(str, Enum):
    r"""
    How a dependent document holds the identifier of its parent.
    """
    SCALAR = "scalar"  # e.g. `{"protocolId": <id>}`
    SET_MEMBERSHIP = "set_membership"  # e.g. `{"stepIds": [<id>, <id>]}`


@dataclass(frozen=True)
class ReferenceSpec:
    """
    A declared relationship between a parent entity type and a dependent entity type, whose
    documents (in the specified collection) store the parent's identifier in the specified field.

    Note: `frozen` means the instances are immutable.
    """
    parent_type: str = field()  # e.g. "ProtocolEntity"
    dependent_type: str = field()  # e.g. "SourceEntity"
    collection_name: str = field()  # e.g. "sources"
    field_name: str = field()  # e.g. "protocolId"
    cardinality: Cardinality = field(default=Cardinality.SCALAR)

    @property
    def is_set_membership(self) -> bool:
        return self.cardinality is Cardinality.SET_MEMBERSHIP
