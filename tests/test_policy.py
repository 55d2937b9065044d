from custom_components.aio_presence.runtime.policy import (
    resolve_composite_presence,
    resolve_outgoing_mode,
    should_push_mode,
)
from custom_components.aio_presence.runtime.snapshot import AggregationPolicy, MirroredMode, Presence

P = Presence.PRESENT
N = Presence.NOT_PRESENT


def test_composite_guest_override_wins():
    presence, reason = resolve_composite_presence(
        policy=AggregationPolicy.EVERYONE, presences=[N, N], guest_override=True
    )
    assert presence is P
    assert reason == "guest_override"


def test_composite_no_entities_is_not_present():
    for policy in AggregationPolicy:
        presence, reason = resolve_composite_presence(policy=policy, presences=[], guest_override=False)
        assert presence is N
        assert reason == "no_entities"


def test_composite_anyone():
    assert resolve_composite_presence(
        policy=AggregationPolicy.ANYONE, presences=[N, P, N], guest_override=False
    ) == (P, "someone_present")
    assert resolve_composite_presence(
        policy=AggregationPolicy.ANYONE, presences=[N, N, N], guest_override=False
    ) == (N, "everyone_away")


def test_composite_everyone():
    assert resolve_composite_presence(
        policy=AggregationPolicy.EVERYONE, presences=[P, P, N], guest_override=False
    ) == (N, "someone_away")
    assert resolve_composite_presence(
        policy=AggregationPolicy.EVERYONE, presences=[P, P, P], guest_override=False
    ) == (P, "everyone_present")


def test_outgoing_mode():
    assert resolve_outgoing_mode(0) is MirroredMode.AWAY
    assert resolve_outgoing_mode(2) is MirroredMode.HOME


def test_push_suppressed_by_guest_override():
    assert not should_push_mode(
        target=MirroredMode.HOME,
        mirrored_mode=MirroredMode.OFF,
        pending_mode=None,
        guest_override=True,
    )


def test_push_skipped_when_already_mirrored_or_pending():
    assert not should_push_mode(
        target=MirroredMode.HOME, mirrored_mode=MirroredMode.HOME, pending_mode=None, guest_override=False
    )
    assert not should_push_mode(
        target=MirroredMode.AWAY, mirrored_mode=MirroredMode.HOME, pending_mode=MirroredMode.AWAY, guest_override=False
    )
    assert should_push_mode(
        target=MirroredMode.AWAY, mirrored_mode=MirroredMode.NIGHT, pending_mode=None, guest_override=False
    )
