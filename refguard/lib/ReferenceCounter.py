import logging
from typing import Any, Optional

from pymongo.database import Database

from refguard.lib.exceptions import InfrastructureError
from refguard.lib.ReferenceSpec import ReferenceSpec

logger = logging.getLogger(__name__)


class MongoStore:
    r"""
    A class that can be used to count the documents in a MongoDB database that hold a given value
    in a given field.

    Note: Each count is a single read-only query. It is fast when there is an index on the field
          (see `ensure_reference_indexes`), but it does not require one.
    """

    def __init__(self, database: Database, max_time_ms: Optional[int] = None):
        self.db = database
        self.max_time_ms = max_time_ms

    def count(self, collection_name: str, field_name: str, value: Any, is_set_membership: bool) -> int:
        r"""
        Returns the number of documents in the specified collection whose specified field either
        equals the specified value or, for set membership, is a list that contains it.

        References:
        - https://pymongo.readthedocs.io/en/stable/api/pymongo/collection.html#pymongo.collection.Collection.count_documents
        - https://www.mongodb.com/docs/manual/reference/operator/query/elemMatch/
        """
        if is_set_membership:
            query_filter = {field_name: {"$elemMatch": {"$eq": value}}}
        else:
            query_filter = {field_name: value}

        options = {}
        if self.max_time_ms is not None:
            options["maxTimeMS"] = self.max_time_ms

        return self.db.get_collection(collection_name).count_documents(query_filter, **options)


class ReferenceCounter:
    r"""
    Counts the documents that reference a given parent via a given reference spec.
    """

    def __init__(self, store):
        self.store = store

    def count(self, spec: ReferenceSpec, target_id: Any) -> int:
        r"""
        Returns the number of documents that reference the specified target via the specified spec.

        Raises an `InfrastructureError` if the count could not be determined, so that callers
        cannot mistake "couldn't check" for "nothing references this".
        """
        try:
            count = self.store.count(spec.collection_name, spec.field_name, target_id, spec.is_set_membership)
        except Exception as error:
            logger.error(f"Error counting {spec.dependent_type} references "
                         f"({spec.collection_name}.{spec.field_name}) to {target_id}", exc_info=True)
            raise InfrastructureError(f"Failed to count {spec.dependent_type} references "
                                      f"in `{spec.collection_name}`: {error}") from error

        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise InfrastructureError(f"Store returned an invalid count for `{spec.collection_name}`: {count!r}")

        logger.debug(f"Found {count} {spec.dependent_type} references to {spec.parent_type} {target_id}")
        return count
