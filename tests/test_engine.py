import pytest

from custom_components.aio_presence.models import PresenceOptions
from custom_components.aio_presence.runtime.contracts import SCOPE_ENTITY, SCOPE_HOUSEHOLD
from custom_components.aio_presence.runtime.errors import InvalidIdentityError, UnknownEntityError
from custom_components.aio_presence.runtime.fusion import HeartbeatResult
from custom_components.aio_presence.runtime.snapshot import (
    AggregationPolicy,
    MirroredMode,
    Presence,
)

ALICE = "aa-aa-aa-aa-aa-01"
BOB = "aa-aa-aa-aa-aa-02"
CAROL = "aa-aa-aa-aa-aa-03"


def _household(make_engine, policy="anyone", **kwargs):
    engine = make_engine(PresenceOptions(policy=AggregationPolicy(policy)), **kwargs)
    for identity in (ALICE, BOB, CAROL):
        engine.add_entity(identity)
    return engine


def test_empty_household_is_not_present(make_engine):
    engine = make_engine()
    snapshot = engine.recompute_aggregate()
    assert snapshot.presence is Presence.NOT_PRESENT
    assert snapshot.entity_count == 0
    assert snapshot.present_count == 0


def test_anyone_policy_is_present_with_one_of_three(make_engine):
    engine = _household(make_engine, "anyone")
    engine.manual_present(BOB)
    assert engine.presence is Presence.PRESENT
    assert engine.snapshot.present_count == 1
    assert engine.snapshot.entity_count == 3


def test_everyone_policy_needs_all_present(make_engine):
    engine = _household(make_engine, "everyone")
    engine.manual_present(ALICE)
    engine.manual_present(BOB)
    assert engine.presence is Presence.NOT_PRESENT

    engine.manual_present(CAROL)
    assert engine.presence is Presence.PRESENT


def test_policy_change_recomputes(make_engine):
    engine = _household(make_engine, "everyone")
    engine.manual_present(ALICE)
    assert engine.presence is Presence.NOT_PRESENT

    engine.set_policy("anyone")
    assert engine.policy is AggregationPolicy.ANYONE
    assert engine.presence is Presence.PRESENT


def test_guest_override_forces_present_until_cleared(make_engine):
    engine = _household(make_engine)
    engine.set_guest_override(True)
    assert engine.presence is Presence.PRESENT
    assert engine.snapshot.present_count == 0

    engine.set_guest_override(False)
    assert engine.presence is Presence.NOT_PRESENT


def test_guest_override_with_no_entities(make_engine):
    engine = make_engine()
    engine.set_guest_override(True)
    assert engine.presence is Presence.PRESENT


def test_add_entity_is_idempotent_across_formats(make_engine):
    engine = make_engine()
    first = engine.add_entity("AA:AA:AA:AA:AA:01", label="Alice")
    second = engine.add_entity(ALICE, label="Someone else")
    assert first is second
    assert engine.identities() == [ALICE]
    assert first.label == "Alice"
    assert "aa:aa:aa:aa:aa:01" in engine
    assert "not-a-mac" not in engine


def test_add_entity_rejects_invalid_identity(make_engine):
    engine = make_engine()
    with pytest.raises(InvalidIdentityError):
        engine.add_entity("kitchen")


def test_add_entity_uses_default_timeout(make_engine):
    engine = make_engine(PresenceOptions(heartbeat_timeout=120))
    assert engine.add_entity(ALICE).heartbeat_timeout == 120
    assert engine.add_entity(BOB, heartbeat_timeout=2).heartbeat_timeout == 5


def test_remove_entity_twice_is_a_logged_noop(make_engine, caplog):
    detached = []
    engine = make_engine(on_detach=detached.append)
    engine.add_entity(ALICE)

    assert engine.remove_entity(ALICE) is True
    assert engine.remove_entity(ALICE) is False
    assert detached == [ALICE]
    assert "not attached" in caplog.text


def test_removing_last_present_entity_recomputes(make_engine):
    engine = _household(make_engine)
    engine.manual_present(ALICE)
    assert engine.presence is Presence.PRESENT

    engine.remove_entity(ALICE)
    assert engine.presence is Presence.NOT_PRESENT
    assert engine.snapshot.entity_count == 2


def test_remove_all_entities(make_engine):
    detached = []
    engine = _household(make_engine, on_detach=detached.append)
    assert engine.remove_all_entities() == 3
    assert engine.identities() == []
    assert sorted(detached) == [ALICE, BOB, CAROL]
    assert engine.presence is Presence.NOT_PRESENT


def test_unknown_entity_command_raises(make_engine):
    engine = make_engine()
    with pytest.raises(UnknownEntityError, match="No tracked entity"):
        engine.geofence_exit(ALICE)


def test_handle_message_routes_to_tracked_entity(make_engine, clock):
    engine = make_engine()
    engine.add_entity(ALICE)
    topic = f"UnifiU6Pro/status/mac-{ALICE}/lastseen/epoch"

    assert engine.handle_message(topic, str(int(clock.now)).encode()) is HeartbeatResult.ACCEPTED
    assert engine.get(ALICE).final_presence is Presence.PRESENT
    assert engine.handle_message(topic, b"garbage") is None
    assert engine.handle_message(f"UnifiU6Pro/status/mac-{BOB}/lastseen/epoch", "1") is None


def test_events_are_emitted_for_entity_and_household(make_engine, clock):
    events = []
    engine = make_engine(on_event=events.append)
    engine.add_entity(ALICE, label="Alice")
    engine.heartbeat(ALICE, int(clock.now))

    assert [(e.scope, e.presence, e.previous) for e in events] == [
        (SCOPE_ENTITY, "present", "not_present"),
        (SCOPE_HOUSEHOLD, "present", "not_present"),
    ]
    assert events[0].identity == ALICE
    assert events[0].label == "Alice"
    assert events[1].reason == "someone_present"


def test_snapshot_hook_receives_every_recompute(make_engine):
    snapshots = []
    engine = make_engine(on_snapshot=snapshots.append)
    engine.add_entity(ALICE)
    engine.manual_present(ALICE)
    assert snapshots[-1].present_count == 1
    assert snapshots[-1].entities[ALICE].is_present


def test_deferred_recompute_uses_hook(make_engine):
    requested = []
    engine = make_engine(request_recompute=lambda: requested.append(1))
    engine.add_entity(ALICE)
    engine.manual_present(ALICE)
    assert requested
    assert engine.presence is Presence.NOT_PRESENT

    engine.recompute_aggregate()
    assert engine.presence is Presence.PRESENT


def _mirrored(make_engine):
    pushes = []
    engine = make_engine(mode_push=pushes.append)
    engine.add_entity(ALICE)
    assert pushes == [MirroredMode.AWAY]
    engine.mode_push_completed(MirroredMode.AWAY, True)
    assert engine.mirrored_mode is MirroredMode.AWAY
    return engine, pushes


def test_mirror_follows_present_count(make_engine, clock):
    engine, pushes = _mirrored(make_engine)

    engine.heartbeat(ALICE, int(clock.now))
    assert pushes == [MirroredMode.AWAY, MirroredMode.HOME]
    assert engine.pending_mode is MirroredMode.HOME

    # Recomputing while the push is in flight does not push again.
    engine.recompute_aggregate()
    assert len(pushes) == 2

    engine.mode_push_completed(MirroredMode.HOME, True)
    engine.manual_not_present(ALICE)
    assert pushes[-1] is MirroredMode.AWAY


def test_override_mode_latches_guest_override_and_suppresses_push(make_engine, clock):
    engine, pushes = _mirrored(make_engine)

    engine.set_mirrored_mode("off")
    assert engine.guest_override is True
    assert engine.presence is Presence.PRESENT

    engine.heartbeat(ALICE, int(clock.now))
    engine.manual_not_present(ALICE)
    assert pushes == [MirroredMode.AWAY]

    engine.set_guest_override(False)
    assert pushes == [MirroredMode.AWAY, MirroredMode.AWAY]


def test_other_modes_clear_guest_override(make_engine):
    engine, _ = _mirrored(make_engine)
    engine.set_mirrored_mode(MirroredMode.OFF)
    engine.set_mirrored_mode(MirroredMode.NIGHT)
    assert engine.guest_override is False
    assert engine.snapshot.mirrored_mode is MirroredMode.NIGHT


def test_configured_override_mode(make_engine):
    engine = make_engine(PresenceOptions(override_mode=MirroredMode.NIGHT))
    engine.set_mirrored_mode("night")
    assert engine.guest_override is True
    engine.set_mirrored_mode("off")
    assert engine.guest_override is False


def test_away_mode_releases_held_presence(make_engine, clock, timers):
    engine, _ = _mirrored(make_engine)
    engine.heartbeat(ALICE, int(clock.now))
    engine.mode_push_completed(MirroredMode.HOME, True)

    timers.advance(60)
    machine = engine.get(ALICE)
    assert machine.final_presence is Presence.PRESENT

    engine.set_mirrored_mode("away")
    assert machine.final_presence is Presence.NOT_PRESENT
    assert engine.presence is Presence.NOT_PRESENT


def test_failed_push_waits_for_reconcile(make_engine):
    pushes = []
    engine = make_engine(mode_push=pushes.append)
    engine.add_entity(ALICE)
    engine.mode_push_completed(MirroredMode.AWAY, False)
    assert engine.pending_mode is None

    engine.recompute_aggregate()
    engine.recompute_aggregate()
    assert pushes == [MirroredMode.AWAY]

    engine.reconcile()
    assert pushes == [MirroredMode.AWAY, MirroredMode.AWAY]


def test_stale_push_completion_is_ignored(make_engine, clock):
    engine, pushes = _mirrored(make_engine)
    engine.heartbeat(ALICE, int(clock.now))
    engine.mode_push_completed(MirroredMode.AWAY, True)
    assert engine.mirrored_mode is MirroredMode.AWAY
    assert engine.pending_mode is MirroredMode.HOME


def test_no_push_without_controller(make_engine, clock):
    engine = make_engine()
    engine.add_entity(ALICE)
    engine.heartbeat(ALICE, int(clock.now))
    assert engine.pending_mode is None
    assert engine.mirrored_mode is None


def test_household_present_holds_until_next_recompute(make_engine):
    events = []
    engine = make_engine(on_event=events.append)
    engine.add_entity(ALICE)

    snapshot = engine.household_present()
    assert snapshot.presence is Presence.PRESENT
    assert engine.presence is Presence.PRESENT
    assert engine.get(ALICE).final_presence is Presence.NOT_PRESENT
    assert [(e.scope, e.presence, e.reason) for e in events] == [(SCOPE_HOUSEHOLD, "present", "manual")]

    engine.recompute_aggregate()
    assert engine.presence is Presence.NOT_PRESENT


def test_household_depart_is_replaced_by_entity_change(make_engine, clock):
    engine = _household(make_engine)
    engine.manual_present(ALICE)
    assert engine.presence is Presence.PRESENT

    engine.household_depart()
    assert engine.presence is Presence.NOT_PRESENT
    assert engine.snapshot.present_count == 1

    engine.heartbeat(BOB, int(clock.now))
    assert engine.presence is Presence.PRESENT


def test_household_command_does_not_push_mode(make_engine):
    engine, pushes = _mirrored(make_engine)
    engine.household_arrive()
    assert engine.presence is Presence.PRESENT
    assert pushes == [MirroredMode.AWAY]
    assert engine.pending_mode is None


def test_household_command_without_change_emits_nothing(make_engine):
    events = []
    engine = make_engine(on_event=events.append)
    engine.household_not_present()
    assert events == []
