from typing import Iterable, List, Tuple
from pathlib import Path
from dataclasses import fields
import csv

from rich.table import Table, Column

from refguard.lib.exceptions import ConfigurationError
from refguard.lib.ReferenceSpec import ReferenceSpec


class ReferenceRegistry:
    """
    The reference graph: for each parent entity type, the dependent relationships that may
    reference it.

    Note: The registry is built once and is read-only afterward. The order in which specs are
          declared is preserved, since it determines the order in which violations are reported.
    """

    def __init__(self, parent_types: Iterable[str], specs: Iterable[ReferenceSpec]):
        self._parent_types: Tuple[str, ...] = tuple(dict.fromkeys(parent_types))  # de-duplicates, keeps order
        self._specs: Tuple[ReferenceSpec, ...] = tuple(specs)

        specs_by_parent_type = {parent_type: [] for parent_type in self._parent_types}
        seen_keys = set()
        for spec in self._specs:
            if spec.parent_type not in specs_by_parent_type:
                raise ConfigurationError(f"Reference spec names an unregistered parent type: {spec}")

            key = (spec.parent_type, spec.collection_name, spec.field_name)
            if key in seen_keys:
                raise ConfigurationError(f"Duplicate reference spec: {spec}")
            seen_keys.add(key)

            specs_by_parent_type[spec.parent_type].append(spec)

        self._specs_by_parent_type = {
            parent_type: tuple(specs) for parent_type, specs in specs_by_parent_type.items()
        }

    def __iter__(self):
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, parent_type: str) -> bool:
        return parent_type in self._specs_by_parent_type

    @property
    def parent_types(self) -> Tuple[str, ...]:
        return self._parent_types

    def dependents_of(self, parent_type: str) -> Tuple[ReferenceSpec, ...]:
        r"""
        Returns the specs of the dependent relationships of the specified parent type, in the
        order in which they were declared.

        Returns an empty tuple for a registered parent type that nothing references. Raises a
        `ConfigurationError` for a parent type that was never registered.
        """
        if parent_type not in self._specs_by_parent_type:
            raise ConfigurationError(f"Parent type is not registered: {parent_type}")
        return self._specs_by_parent_type[parent_type]

    def get_collection_field_pairs(self) -> List[Tuple[str, str]]:
        """
        Returns the distinct `(collection_name, field_name)` pairs among all specs, in declared order.
        """
        distinct_pairs = []
        for spec in self._specs:
            pair = (spec.collection_name, spec.field_name)
            if pair not in distinct_pairs:
                distinct_pairs.append(pair)
        return distinct_pairs

    def dump_to_tsv_file(self, file_path: str | Path) -> None:
        r"""
        Helper function that dumps the reference specs to a TSV file at the specified path.
        """
        column_names = [field_.name for field_ in fields(ReferenceSpec)]
        with open(file_path, "w", newline="") as tsv_file:
            writer = csv.writer(tsv_file, delimiter="\t")
            writer.writerow(column_names)  # header row
            for spec in self._specs:
                writer.writerow([spec.parent_type,
                                 spec.dependent_type,
                                 spec.collection_name,
                                 spec.field_name,
                                 spec.cardinality.value])  # data row

    def as_table(self) -> Table:
        r"""
        Returns the reference specs as a `rich.Table` instance, including one row for each
        registered parent type that nothing references.
        """
        table = Table(Column(header="Parent type", footer=f"{len(self._specs)} references"),
                      Column(header="Dependent type"),
                      Column(header="Collection"),
                      Column(header="Field"),
                      Column(header="Cardinality"),
                      title="References",
                      show_footer=True)
        for parent_type in self._parent_types:
            specs = self._specs_by_parent_type[parent_type]
            if len(specs) == 0:
                table.add_row(parent_type, "[dim](none)[/dim]", "", "", "")
            for spec in specs:
                table.add_row(spec.parent_type,
                              spec.dependent_type,
                              spec.collection_name,
                              spec.field_name,
                              spec.cardinality.value)

        return table
