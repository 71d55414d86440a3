import threading
import time
from uuid import uuid4

import pytest

from refguard.lib.catalog import build_catalog_registry
from refguard.lib.ReferenceCounter import ReferenceCounter
from refguard.lib.Settings import ValidationSettings
from refguard.lib.Validator import ReferentialIntegrityValidator


class InMemoryStore:
    r"""
    A stand-in for `MongoStore` that counts documents held in plain lists, records every query it
    receives, and can be told to stall or fail on specific collections.
    """

    def __init__(self):
        self.collections: dict[str, list[dict]] = {}
        self.queries: list[tuple] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self._lock = threading.Lock()

    def insert(self, collection_name: str, document: dict) -> None:
        self.collections.setdefault(collection_name, []).append(document)

    def insert_many(self, collection_name: str, documents: list[dict]) -> None:
        for document in documents:
            self.insert(collection_name, document)

    def remove_where(self, collection_name: str, field_name: str, value) -> None:
        self.collections[collection_name] = [
            document for document in self.collections.get(collection_name, [])
            if document.get(field_name) != value
        ]

    def count(self, collection_name: str, field_name: str, value, is_set_membership: bool) -> int:
        with self._lock:
            self.queries.append((collection_name, field_name, value, is_set_membership))

        if collection_name in self.delays:
            time.sleep(self.delays[collection_name])
        if collection_name in self.failures:
            raise self.failures[collection_name]

        num_matches = 0
        for document in self.collections.get(collection_name, []):
            held_value = document.get(field_name)
            if is_set_membership:
                if isinstance(held_value, list) and value in held_value:
                    num_matches += 1
            elif held_value == value:
                num_matches += 1
        return num_matches


@pytest.fixture
def registry():
    return build_catalog_registry()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def parent_id():
    return uuid4()


@pytest.fixture
def make_validator(registry, store):
    def _make_validator(**settings_kwargs) -> ReferentialIntegrityValidator:
        return ReferentialIntegrityValidator(
            registry=registry,
            counter=ReferenceCounter(store),
            settings=ValidationSettings(**settings_kwargs),
        )

    return _make_validator
