import logging
from typing import Any

from pymongo.collection import Collection

from refguard.lib.constants import DEFAULT_ID_FIELD_NAME
from refguard.lib.exceptions import ReferentialIntegrityViolation
from refguard.lib.ValidationResult import Outcome, ValidationResult
from refguard.lib.Validator import ReferentialIntegrityValidator

logger = logging.getLogger(__name__)


class MutationGuard:
    r"""
    Wraps the delete and update operations of the collection that stores a parent entity type,
    refusing to perform them when doing so would leave dangling references behind.
    """

    def __init__(
            self,
            validator: ReferentialIntegrityValidator,
            parent_type: str,
            collection: Collection,
            id_field: str = DEFAULT_ID_FIELD_NAME,
    ):
        self.validator = validator
        self.parent_type = parent_type
        self.collection = collection
        self.id_field = id_field

    def _enforce(self, result: ValidationResult, entity_id: Any, action: str) -> None:
        if result.outcome is Outcome.INFRASTRUCTURE_ERROR:
            raise result.error
        if result.outcome is Outcome.BLOCKED:
            logger.warning(f"Referential integrity violation prevented {action} of {self.parent_type} "
                           f"{entity_id}: {result.message}")
            raise ReferentialIntegrityViolation(result)

    def delete(self, entity_id: Any):
        r"""
        Deletes the document having the specified identifier, unless other documents reference it.

        Returns the result of the underlying `delete_one` call.
        """
        result = self.validator.validate_deletion(self.parent_type, entity_id)
        self._enforce(result, entity_id, "deletion")

        return self.collection.delete_one({self.id_field: entity_id})

    def update(self, entity_id: Any, document: dict):
        r"""
        Replaces the document having the specified identifier with the specified one. If the new
        document carries a different identifier, or none at all, the replacement is refused while
        other documents reference the current identifier.

        Note: MongoDB keeps the `_id` of a replaced document when the replacement omits it, so only
              then does a missing identifier mean "unchanged".

        Returns the result of the underlying `replace_one` call.
        """
        if self.id_field in document:
            new_id = document[self.id_field]
        elif self.id_field == "_id":
            new_id = entity_id
        else:
            new_id = None  # the replacement would strip the identity the dependents hold

        if new_id != entity_id:
            result = self.validator.validate_update(self.parent_type, entity_id, new_id)
            self._enforce(result, entity_id, "update")

        return self.collection.replace_one({self.id_field: entity_id}, document)
