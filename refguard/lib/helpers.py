from typing import List
from uuid import UUID
import logging

from pymongo import ASCENDING, MongoClient, timeout
from pymongo.database import Database
from linkml_runtime import SchemaView
from rich.logging import RichHandler

from refguard.lib.constants import DATABASE_CLASS_NAME, console
from refguard.lib.ReferenceRegistry import ReferenceRegistry
from refguard.lib.ReferenceSpec import Cardinality, ReferenceSpec


def connect_to_database(mongo_uri: str, database_name: str, verbose: bool = True) -> MongoClient:
    """
    Returns a Mongo client. Raises an exception if the database is not accessible.

    Note: Entity identifiers (and the foreign keys that hold them) are `uuid.UUID` values. PyMongo refuses to
          encode those unless a UUID representation is configured, and a representation other than the one the
          catalog was written with would make every reference count come back as zero. The catalog stores
          them in the standard (subtype 4) binary representation.
    """
    mongo_client: MongoClient = MongoClient(host=mongo_uri, directConnection=True, uuidRepresentation="standard")

    with (timeout(5)):  # if any message exchange takes > 5 seconds, this will raise an exception
        (host, port_number) = mongo_client.address

        if verbose:
            console.print(f'Connected to MongoDB server: "{host}:{port_number}"')

        # Check whether the database exists on the MongoDB server.
        if database_name not in mongo_client.list_database_names():
            raise ValueError(f'Database "{database_name}" not found on the MongoDB server.')

    return mongo_client


def parse_entity_id(value: str) -> UUID | str:
    r"""
    Returns the specified identifier as a `UUID` if it looks like one; otherwise, returns it as is.
    """
    try:
        return UUID(value)
    except ValueError:
        return value


def get_collection_names_from_schema(schema_view: SchemaView) -> list[str]:
    """
    Returns the names of the slots of the `Database` class that describe database collections.

    :param schema_view: A `SchemaView` instance
    """
    collection_names = []

    for slot_name in schema_view.class_slots(DATABASE_CLASS_NAME):
        slot_definition = schema_view.induced_slot(slot_name, DATABASE_CLASS_NAME)

        # Filter out any slots that don't correspond to a collection (e.g. `db_version`).
        if slot_definition.multivalued and slot_definition.inlined_as_list:
            if slot_name not in collection_names:
                collection_names.append(slot_name)

    return collection_names


def get_range_class_names(schema_view: SchemaView, slot_definition) -> list[str]:
    r"""
    Returns the names of the classes (including descendants) an instance of which the slot can refer to,
    taking into account the slot's `any_of` constraints, if any.

    Reference: https://github.com/orgs/linkml/discussions/2101#discussion-6625646
    """
    all_class_names = schema_view.all_classes()
    range_class_names = []
    if slot_definition.any_of:
        for slot_expression in slot_definition.any_of:
            if slot_expression.range in all_class_names:
                range_class_names.extend(schema_view.class_descendants(slot_expression.range))
    elif slot_definition.range in all_class_names:
        range_class_names.extend(schema_view.class_descendants(slot_definition.range))

    return list(dict.fromkeys(range_class_names))  # removes duplicates, keeps order


def derive_registry_from_schema(schema_view: SchemaView) -> ReferenceRegistry:
    r"""
    Returns a registry of the references described by a LinkML schema.

    Every class whose instances can be stored in a collection is a parent type. Every slot (of such a class)
    whose range is such a class is a reference, held by the documents of the collection in which the slot's
    own class is stored.
    """
    # For each collection, determine the names of the classes whose instances can be stored in that collection.
    collection_name_to_class_names = {}  # example: { "study_set": ["Study"] }
    for collection_name in sorted(get_collection_names_from_schema(schema_view), key=str.lower):
        slot_definition = schema_view.induced_slot(collection_name, DATABASE_CLASS_NAME)
        names_of_eligible_classes = schema_view.class_descendants(slot_definition.range)  # includes own class name
        collection_name_to_class_names[collection_name] = names_of_eligible_classes

    parent_types = []
    for class_names in collection_name_to_class_names.values():
        for class_name in class_names:
            if class_name not in parent_types:
                parent_types.append(class_name)

    specs: List[ReferenceSpec] = []
    seen_keys = set()
    for collection_name, class_names in collection_name_to_class_names.items():
        for class_name in class_names:
            for slot_name in schema_view.class_slots(class_name):
                slot_definition = schema_view.induced_slot(slot_name=slot_name, class_name=class_name)
                cardinality = Cardinality.SET_MEMBERSHIP if slot_definition.multivalued else Cardinality.SCALAR

                for target_class_name in get_range_class_names(schema_view, slot_definition):
                    if target_class_name not in parent_types:
                        continue  # instances of this class are not stored in their own documents

                    # Subclasses stored in the same collection share the slot; catalog it once.
                    key = (target_class_name, collection_name, slot_name)
                    if key in seen_keys:
                        continue
                    seen_keys.add(key)

                    specs.append(ReferenceSpec(parent_type=target_class_name,
                                               dependent_type=class_name,
                                               collection_name=collection_name,
                                               field_name=slot_name,
                                               cardinality=cardinality))

    return ReferenceRegistry(parent_types=parent_types, specs=specs)


def ensure_reference_indexes(database: Database, registry: ReferenceRegistry) -> list[str]:
    r"""
    Creates an ascending index on each field that holds references, so that counting references is fast.
    Returns the names of the indexes.

    Note: `create_index` does nothing if an identical index already exists.
    """
    index_names = []
    for collection_name, field_name in registry.get_collection_field_pairs():
        index_name = f"idx_{collection_name}_{field_name}"
        database.get_collection(collection_name).create_index([(field_name, ASCENDING)], name=index_name)
        index_names.append(index_name)
    return index_names


def configure_logging(verbose: bool = False) -> None:
    r"""
    Routes log records to the shared console.

    Reference: https://rich.readthedocs.io/en/stable/logging.html
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format="%(message)s",
                        handlers=[RichHandler(console=console, show_path=False)],
                        force=True)
