import pytest

from event_sourcing_core import (
    ConfigurationError,
    Event,
    SequencingError,
    Snapshot,
    Stream,
    ValidationError,
)


def stored(version, name="Deposited", **payload):
    return {"name": name, "event_version": 1, "payload": payload, "meta": {}, "version": version}


def test_versions_assigned_in_order_on_fresh_stream():
    stream = Stream("acct-1", "Account")
    stream.add_events([Event(name="Deposited", payload={"amount": i}) for i in range(5)])

    assert [e.version for e in stream.get_events()] == [1, 2, 3, 4, 5]
    assert stream.expected_next_version() == 6


def test_single_event_accepted_by_add_events():
    stream = Stream("acct-1", "Account")
    stream.add_events(Event(name="Opened"))
    assert [e.version for e in stream.uncommitted_events] == [1]


def test_snapshot_trims_older_events():
    """Only events after the snapshot version survive construction."""
    stream = Stream(
        "acct-1",
        "Account",
        events=[stored(v) for v in (3, 4, 5, 6, 7)],
        snapshot={"version": 5, "state": {"balance": 50}},
    )
    assert [e.version for e in stream.get_events()] == [6, 7]
    assert stream.get_uncommitted_events() == []
    assert stream.get_committed_version() == 7


def test_stored_events_are_sorted():
    stream = Stream("acct-1", "Account", events=[stored(3), stored(1), stored(2)])
    assert [e.version for e in stream.events] == [1, 2, 3]


def test_stored_event_without_version_is_malformed():
    events = [stored(1), {"name": "Deposited", "payload": {}}]
    with pytest.raises(ValidationError, match="no version number"):
        Stream("acct-1", "Account", events=events)


def test_gap_in_stored_events_is_rejected():
    with pytest.raises(SequencingError):
        Stream("acct-1", "Account", events=[stored(1), stored(3)])


def test_missing_identity_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        Stream("", "Account")
    with pytest.raises(ConfigurationError):
        Stream("acct-1", None)


@pytest.mark.parametrize(
    "events, snapshot, uncommitted, expected_next",
    [
        ([], None, 0, 1),
        ([stored(1), stored(2)], None, 0, 3),
        ([stored(1)], None, 2, 4),
        ([], {"version": 5}, 0, 6),
        ([stored(6)], {"version": 5}, 1, 8),
    ],
)
def test_explicit_wrong_version_is_a_sequencing_error(events, snapshot, uncommitted, expected_next):
    stream = Stream("acct-1", "Account", events=events, snapshot=snapshot)
    stream.add_events([Event(name="Deposited") for _ in range(uncommitted)])
    assert stream.expected_next_version() == expected_next

    for wrong in (expected_next - 1, expected_next + 1, expected_next + 10):
        if wrong <= 0:
            continue
        with pytest.raises(SequencingError) as excinfo:
            stream.add_event(Event(name="Deposited", version=wrong))
        assert excinfo.value.expected_version == expected_next
        assert excinfo.value.actual_version == wrong

    accepted = stream.add_event(Event(name="Deposited", version=expected_next))
    assert accepted.version == expected_next


def test_non_positive_version_is_assigned():
    stream = Stream("acct-1", "Account", events=[stored(1)])
    event = stream.add_event(Event(name="Deposited", version=0))
    assert event.version == 2


def test_add_event_rejects_non_events():
    stream = Stream("acct-1", "Account")
    with pytest.raises(TypeError):
        stream.add_event({"name": "Deposited"})


def test_failed_batch_keeps_earlier_events_until_discarded():
    stream = Stream("acct-1", "Account")
    with pytest.raises(SequencingError):
        stream.add_events([Event(name="A"), Event(name="B", version=7)])

    assert [e.name for e in stream.uncommitted_events] == ["A"]
    discarded = stream.discard_uncommitted_events()
    assert [e.name for e in discarded] == ["A"]
    assert stream.get_events() == []
    assert stream.expected_next_version() == 1


def test_get_events_orders_committed_before_uncommitted():
    stream = Stream("acct-1", "Account", events=[stored(1), stored(2)])
    stream.add_events([Event(name="Deposited"), Event(name="Deposited")])

    assert [e.version for e in stream.get_events()] == [1, 2, 3, 4]
    assert [e.version for e in stream.get_events(after_version=2)] == [3, 4]
    assert stream.get_events(after_version=4) == []


def test_commit_all_events_is_idempotent():
    stream = Stream("acct-1", "Account")
    stream.add_event(Event(name="Opened"))
    assert stream.has_uncommitted_events

    stream.commit_all_events()
    stream.commit_all_events()

    assert [e.version for e in stream.events] == [1]
    assert stream.uncommitted_events == []
    assert not stream.has_uncommitted_events
    assert stream.get_committed_version() == 1


def test_stream_metadata_takes_precedence_over_event_metadata():
    stream = Stream("acct-1", "Account", meta={"tenant": "acme"})
    event = stream.add_event(
        Event(name="Opened", meta={"tenant": "other", "aggregate_id": "spoofed", "trace": "t-1"})
    )
    assert event.meta == {
        "tenant": "acme",
        "trace": "t-1",
        "aggregate_id": "acct-1",
        "aggregate_type": "Account",
    }


def test_stream_metadata_cannot_set_reserved_keys():
    with pytest.raises(ConfigurationError, match=r"reserved keys: \[aggregate_type,command\]"):
        Stream("acct-1", "Account", meta={"command": {"user": "loader"}, "aggregate_type": "Invoice"})


def test_current_state_is_a_copy_of_the_snapshot():
    snapshot = Snapshot(version=2, state={"balance": 10, "limits": {"daily": 100}})
    stream = Stream("acct-1", "Account", snapshot=snapshot)

    state = stream.get_current_state()
    assert state == {
        "aggregate_id": "acct-1",
        "aggregate_type": "Account",
        "balance": 10,
        "limits": {"daily": 100},
    }

    state["limits"]["daily"] = 0
    assert snapshot.state["limits"]["daily"] == 100


def test_current_state_without_snapshot_is_identity_only():
    stream = Stream("acct-1", "Account")
    assert stream.get_current_state() == {"aggregate_id": "acct-1", "aggregate_type": "Account"}


def test_committed_and_latest_versions_fall_back_to_snapshot():
    stream = Stream("acct-1", "Account", snapshot=Snapshot(version=4))
    assert stream.get_committed_version() == 4
    assert stream.get_latest_version() == 4

    stream.add_event(Event(name="Deposited"))
    assert stream.get_committed_version() == 4
    stream.commit_all_events()
    assert stream.get_latest_version() == 5


def test_extend_events_only_touches_uncommitted():
    stream = Stream("acct-1", "Account", events=[stored(1)])
    stream.add_event(Event(name="Deposited"))
    stream.extend_events({"request_id": "r-9"})

    assert "request_id" not in stream.events[0].meta
    assert stream.uncommitted_events[0].meta["request_id"] == "r-9"
