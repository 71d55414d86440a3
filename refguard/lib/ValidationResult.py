from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from rich.table import Table, Column

from refguard.lib.exceptions import InfrastructureError
from refguard.lib.Violation import ViolationEntry


class Outcome(str, Enum):
    VALID = "valid"
    BLOCKED = "blocked"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


@dataclass(frozen=True)
class ValidationResult:
    """
    The outcome of validating one mutation of one parent entity.

    Note: Instances are built once (via the class methods below) and never modified afterward.
    """
    parent_type: str = field()
    outcome: Outcome = field()
    violations: Tuple[ViolationEntry, ...] = field(default=())
    duration: float = field(default=0.0, compare=False)  # seconds
    error: Optional[InfrastructureError] = field(default=None, compare=False)

    @classmethod
    def valid(cls, parent_type: str, duration: float = 0.0) -> "ValidationResult":
        return cls(parent_type=parent_type, outcome=Outcome.VALID, duration=duration)

    @classmethod
    def blocked(cls, parent_type: str, violations, duration: float = 0.0) -> "ValidationResult":
        violations = tuple(violations)
        if len(violations) == 0:
            raise ValueError("A blocked result must have at least one violation")
        return cls(parent_type=parent_type, outcome=Outcome.BLOCKED, violations=violations, duration=duration)

    @classmethod
    def infrastructure_error(
            cls,
            parent_type: str,
            error: InfrastructureError,
            duration: float = 0.0,
    ) -> "ValidationResult":
        return cls(parent_type=parent_type, outcome=Outcome.INFRASTRUCTURE_ERROR, duration=duration, error=error)

    @property
    def is_valid(self) -> bool:
        return self.outcome is Outcome.VALID

    @property
    def total_references(self) -> int:
        return sum(violation.count for violation in self.violations)

    @property
    def message(self) -> str:
        r"""
        Returns a human-readable summary of the result. For a blocked result, this lists the
        violating dependent types in the order in which the registry declares them.
        """
        if self.outcome is Outcome.BLOCKED:
            referenced_by = ", ".join(violation.describe() for violation in self.violations)
            return f"Cannot delete/modify {self.parent_type}. Referenced by: {referenced_by}"
        elif self.outcome is Outcome.INFRASTRUCTURE_ERROR:
            return f"Could not verify the references to {self.parent_type}: {self.error}"
        return ""

    def as_payload(self) -> dict:
        return {
            "message": self.message,
            "referencingEntities": [
                {"entityType": violation.dependent_type, "count": violation.count}
                for violation in self.violations
            ],
        }

    def as_table(self) -> Table:
        r"""
        Returns the violations as a `rich.Table` instance.
        """
        table = Table(Column(header="Referenced by", footer="Total"),
                      Column(header="Records", justify="right", footer=str(self.total_references)),
                      title=f"References to {self.parent_type}",
                      show_footer=True)
        for violation in self.violations:
            table.add_row(violation.dependent_type, str(violation.count))

        return table
