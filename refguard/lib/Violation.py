from dataclasses import dataclass, field


@dataclass(frozen=True)
class ViolationEntry:
    """
    A dependent entity type whose documents still reference the parent under validation.
    """
    dependent_type: str = field()
    count: int = field()

    def __post_init__(self):
        if self.count <= 0:
            raise ValueError(f"A violation must have a positive count, not {self.count}")

    def describe(self) -> str:
        r"""Returns the fragment used in the consolidated message, e.g. `SourceEntity (3 records)`."""
        return f"{self.dependent_type} ({self.count} records)"
