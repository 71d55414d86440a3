r"""
The reference graph of the entity catalog (protocols, sources, destinations, flows, steps, etc.).

Each entry below corresponds to a field that stores another entity's identifier. A field that is
missing from this list is a field whose references go unchecked, so keep it in sync with the
entity definitions.
"""

from refguard.lib.ReferenceRegistry import ReferenceRegistry
from refguard.lib.ReferenceSpec import Cardinality, ReferenceSpec

SCALAR = Cardinality.SCALAR
SET_MEMBERSHIP = Cardinality.SET_MEMBERSHIP

CATALOG_PARENT_TYPES = [
    "ProtocolEntity",
    "SourceEntity",
    "DestinationEntity",
    "ImporterEntity",
    "ExporterEntity",
    "ProcessorEntity",
    "StepEntity",
    "FlowEntity",
    "AssignmentEntity",
    "OrchestratedFlowEntity",
    "ScheduledFlowEntity",
    "ProcessingChainEntity",
    "TaskScheduledEntity",
]

# (parent type, dependent type, collection name, field name, cardinality)
CATALOG_REFERENCES = [
    ("ProtocolEntity", "SourceEntity", "sources", "protocolId", SCALAR),
    ("ProtocolEntity", "DestinationEntity", "destinations", "protocolId", SCALAR),
    ("ProtocolEntity", "ImporterEntity", "importers", "protocolId", SCALAR),
    ("ProtocolEntity", "ExporterEntity", "exporters", "protocolId", SCALAR),
    ("ProtocolEntity", "ProcessorEntity", "processors", "protocolId", SCALAR),
    ("SourceEntity", "ScheduledFlowEntity", "scheduledflows", "sourceId", SCALAR),
    ("DestinationEntity", "ScheduledFlowEntity", "scheduledflows", "destinationIds", SET_MEMBERSHIP),
    ("ImporterEntity", "StepEntity", "steps", "entityId", SCALAR),
    ("ExporterEntity", "StepEntity", "steps", "entityId", SCALAR),
    ("ProcessorEntity", "StepEntity", "steps", "entityId", SCALAR),
    ("StepEntity", "FlowEntity", "flows", "stepIds", SET_MEMBERSHIP),
    ("StepEntity", "StepEntity", "steps", "nextStepIds", SET_MEMBERSHIP),
    ("StepEntity", "AssignmentEntity", "assignments", "stepId", SCALAR),
    ("StepEntity", "ProcessingChainEntity", "processingchains", "stepIds", SET_MEMBERSHIP),
    ("FlowEntity", "OrchestratedFlowEntity", "orchestratedflows", "flowId", SCALAR),
    ("FlowEntity", "ScheduledFlowEntity", "scheduledflows", "flowId", SCALAR),
    ("AssignmentEntity", "OrchestratedFlowEntity", "orchestratedflows", "assignmentIds", SET_MEMBERSHIP),
]


def build_catalog_registry() -> ReferenceRegistry:
    r"""Returns a registry describing the references among the entity catalog's collections."""
    specs = [
        ReferenceSpec(parent_type=parent_type,
                      dependent_type=dependent_type,
                      collection_name=collection_name,
                      field_name=field_name,
                      cardinality=cardinality)
        for parent_type, dependent_type, collection_name, field_name, cardinality in CATALOG_REFERENCES
    ]
    return ReferenceRegistry(parent_types=CATALOG_PARENT_TYPES, specs=specs)
