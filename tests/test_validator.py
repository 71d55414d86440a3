import logging
import time
from uuid import uuid4

import pytest

from refguard.lib.exceptions import ConfigurationError, InfrastructureError
from refguard.lib.ValidationResult import Outcome
from refguard.lib.Violation import ViolationEntry


def _reference_protocol(store, protocol_id, num_sources: int, num_destinations: int) -> None:
    store.insert_many("sources", [{"id": uuid4(), "protocolId": protocol_id} for _ in range(num_sources)])
    store.insert_many("destinations", [{"id": uuid4(), "protocolId": protocol_id} for _ in range(num_destinations)])


@pytest.mark.parametrize("concurrent", [True, False])
def test_unreferenced_parent_is_valid(make_validator, store, parent_id, concurrent):
    _reference_protocol(store, uuid4(), num_sources=2, num_destinations=2)  # references to another protocol
    validator = make_validator(concurrent=concurrent)

    result = validator.validate_deletion("ProtocolEntity", parent_id)

    assert result.outcome is Outcome.VALID
    assert result.is_valid
    assert result.violations == ()
    assert len(store.queries) == 5  # one per dependent collection


@pytest.mark.parametrize("concurrent", [True, False])
def test_progressively_removing_references(make_validator, store, parent_id, concurrent):
    validator = make_validator(concurrent=concurrent)
    _reference_protocol(store, parent_id, num_sources=3, num_destinations=1)

    first = validator.validate_deletion("ProtocolEntity", parent_id)
    assert first.outcome is Outcome.BLOCKED
    assert first.violations == (ViolationEntry("SourceEntity", 3), ViolationEntry("DestinationEntity", 1))
    assert first.message == ("Cannot delete/modify ProtocolEntity. "
                             "Referenced by: SourceEntity (3 records), DestinationEntity (1 records)")

    store.remove_where("sources", "protocolId", parent_id)
    second = validator.validate_deletion("ProtocolEntity", parent_id)
    assert second.outcome is Outcome.BLOCKED
    assert second.violations == (ViolationEntry("DestinationEntity", 1),)

    store.remove_where("destinations", "protocolId", parent_id)
    third = validator.validate_deletion("ProtocolEntity", parent_id)
    assert third.outcome is Outcome.VALID


def test_violations_follow_registry_order_not_completion_order(make_validator, store, parent_id):
    # Make the earliest-declared collection the slowest one to answer.
    store.delays["sources"] = 0.1
    store.insert("processors", {"id": uuid4(), "protocolId": parent_id})
    store.insert("sources", {"id": uuid4(), "protocolId": parent_id})
    store.insert("importers", {"id": uuid4(), "protocolId": parent_id})
    validator = make_validator(concurrent=True)

    result = validator.validate_deletion("ProtocolEntity", parent_id)

    assert [violation.dependent_type for violation in result.violations] == [
        "SourceEntity", "ImporterEntity", "ProcessorEntity",
    ]


def test_repeated_validation_is_idempotent(make_validator, store, parent_id):
    _reference_protocol(store, parent_id, num_sources=1, num_destinations=4)
    validator = make_validator()

    first = validator.validate_deletion("ProtocolEntity", parent_id)
    second = validator.validate_deletion("ProtocolEntity", parent_id)

    assert first == second
    assert first.message == second.message


def test_set_membership_references_are_counted(make_validator, store, parent_id):
    store.insert("scheduledflows", {"id": uuid4(), "destinationIds": [uuid4(), parent_id]})
    store.insert("scheduledflows", {"id": uuid4(), "destinationIds": [parent_id]})
    store.insert("scheduledflows", {"id": uuid4(), "destinationIds": [uuid4()]})
    validator = make_validator()

    result = validator.validate_deletion("DestinationEntity", parent_id)

    assert result.violations == (ViolationEntry("ScheduledFlowEntity", 2),)
    assert store.queries == [("scheduledflows", "destinationIds", parent_id, True)]


def test_parent_without_dependents_is_valid_without_queries(make_validator, store, parent_id):
    validator = make_validator()

    result = validator.validate_deletion("OrchestratedFlowEntity", parent_id)

    assert result.is_valid
    assert store.queries == []


def test_unregistered_parent_type_fails_loudly(make_validator, parent_id):
    validator = make_validator()

    with pytest.raises(ConfigurationError):
        validator.validate_deletion("WidgetEntity", parent_id)


def test_disabled_validation_issues_no_queries(make_validator, store, parent_id, caplog):
    caplog.set_level(logging.DEBUG, logger="refguard.lib.Validator")
    _reference_protocol(store, parent_id, num_sources=3, num_destinations=1)
    validator = make_validator(enabled=False)

    deletion = validator.validate_deletion("ProtocolEntity", parent_id)
    update = validator.validate_update("ProtocolEntity", parent_id, uuid4())

    assert not validator.enabled
    assert deletion.is_valid
    assert update.is_valid
    assert store.queries == []
    assert "disabled" in caplog.text


def test_disabled_dependent_type_is_not_checked(make_validator, store, parent_id):
    _reference_protocol(store, parent_id, num_sources=3, num_destinations=1)
    validator = make_validator(disabled_dependent_types=frozenset(["SourceEntity"]))

    result = validator.validate_deletion("ProtocolEntity", parent_id)

    assert result.violations == (ViolationEntry("DestinationEntity", 1),)
    assert "sources" not in [query[0] for query in store.queries]


def test_update_without_identity_change_issues_no_queries(make_validator, store, parent_id):
    _reference_protocol(store, parent_id, num_sources=3, num_destinations=1)
    validator = make_validator()

    result = validator.validate_update("ProtocolEntity", parent_id, parent_id)

    assert result.is_valid
    assert store.queries == []


def test_update_with_identity_change_checks_the_current_identity(make_validator, store, parent_id):
    _reference_protocol(store, parent_id, num_sources=3, num_destinations=1)
    new_id = uuid4()
    validator = make_validator()

    update = validator.validate_update("ProtocolEntity", parent_id, new_id)
    deletion = validator.validate_deletion("ProtocolEntity", parent_id)

    assert update.outcome == deletion.outcome
    assert update.violations == deletion.violations
    assert update.message == deletion.message
    assert all(query[2] == parent_id for query in store.queries)


@pytest.mark.parametrize("concurrent", [True, False])
def test_timeout_is_an_infrastructure_error(make_validator, store, parent_id, concurrent):
    store.delays["destinations"] = 0.3
    validator = make_validator(concurrent=concurrent, timeout_seconds=0.05)

    result = validator.validate_deletion("ProtocolEntity", parent_id)

    assert result.outcome is Outcome.INFRASTRUCTURE_ERROR
    assert not result.is_valid
    assert isinstance(result.error, InfrastructureError)
    assert "Timed out" in str(result.error)


@pytest.mark.parametrize("concurrent", [True, False])
def test_failed_query_is_an_infrastructure_error(make_validator, store, parent_id, concurrent):
    store.failures["destinations"] = ConnectionError("connection refused")
    validator = make_validator(concurrent=concurrent)

    result = validator.validate_deletion("ProtocolEntity", parent_id)

    assert result.outcome is Outcome.INFRASTRUCTURE_ERROR
    assert result.violations == ()
    assert isinstance(result.error.__cause__, ConnectionError)


def test_concurrent_mode_counts_in_parallel(make_validator, store, parent_id):
    for collection_name in ["sources", "destinations", "importers", "exporters", "processors"]:
        store.delays[collection_name] = 0.2

    concurrent_result = make_validator(concurrent=True, timeout_seconds=0.8).validate_deletion("ProtocolEntity", parent_id)
    sequential_result = make_validator(concurrent=False, timeout_seconds=0.8).validate_deletion("ProtocolEntity", parent_id)

    assert concurrent_result.outcome is Outcome.VALID
    assert sequential_result.outcome is Outcome.INFRASTRUCTURE_ERROR


def test_get_references_reports_every_enabled_spec(make_validator, store, parent_id):
    _reference_protocol(store, parent_id, num_sources=2, num_destinations=0)
    validator = make_validator()

    references = validator.get_references("ProtocolEntity", parent_id)

    assert [(spec.collection_name, count) for spec, count in references] == [
        ("sources", 2), ("destinations", 0), ("importers", 0), ("exporters", 0), ("processors", 0),
    ]


def test_get_references_raises_on_failure(make_validator, store, parent_id):
    store.failures["sources"] = RuntimeError("boom")
    validator = make_validator()

    with pytest.raises(InfrastructureError):
        validator.get_references("ProtocolEntity", parent_id)


@pytest.mark.parametrize("concurrent", [True, False])
def test_stalled_single_dependent_fails_at_the_deadline(make_validator, store, parent_id, concurrent):
    store.delays["scheduledflows"] = 1.0
    validator = make_validator(concurrent=concurrent, timeout_seconds=0.05)

    start_time = time.perf_counter()
    result = validator.validate_deletion("DestinationEntity", parent_id)
    elapsed = time.perf_counter() - start_time

    assert result.outcome is Outcome.INFRASTRUCTURE_ERROR
    assert elapsed < 0.5


def test_sequential_mode_fails_at_the_deadline_of_a_stalled_counter(make_validator, store, parent_id):
    store.delays["destinations"] = 1.0
    validator = make_validator(concurrent=False, timeout_seconds=0.1)

    start_time = time.perf_counter()
    result = validator.validate_deletion("ProtocolEntity", parent_id)
    elapsed = time.perf_counter() - start_time

    assert result.outcome is Outcome.INFRASTRUCTURE_ERROR
    assert elapsed < 0.5
    assert "importers" not in [query[0] for query in store.queries]
