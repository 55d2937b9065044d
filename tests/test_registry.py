from custom_components.aio_presence.entities.registry import build_registry, read_value
from custom_components.aio_presence.models import PersonConfig, PresenceOptions

ALICE = "aa-aa-aa-aa-aa-01"


def _registry():
    options = PresenceOptions(people=(PersonConfig(ALICE, "Alice"),))
    return build_registry(options)


def test_registry_has_household_and_person_entities():
    registry = _registry()
    binary_keys = {d.key for d in registry.binary_sensors}
    sensor_keys = {d.key for d in registry.sensors}
    select_keys = {d.key for d in registry.selects}

    assert "aio_presence_home" in binary_keys
    assert "aio_presence_aa_aa_aa_aa_aa_01_presence" in binary_keys
    assert "aio_presence_aa_aa_aa_aa_aa_01_network" in sensor_keys
    assert "aio_presence_present_count" in sensor_keys
    assert select_keys == {"aio_presence_policy", "aio_presence_mirrored_mode_select"}


def test_person_entities_carry_device_name():
    registry = _registry()
    person = [d for d in registry.binary_sensors if d.identity == ALICE]
    assert person[0].device_name == "Alice"


def test_read_value_household_and_person(make_engine):
    engine = make_engine()
    engine.add_entity(ALICE, label="Alice")
    engine.manual_present(ALICE)
    snapshot = engine.snapshot
    registry = _registry()
    by_key = {d.key: d for d in registry.binary_sensors + registry.sensors + registry.selects}

    assert read_value(snapshot, by_key["aio_presence_home"]) is True
    assert read_value(snapshot, by_key["aio_presence_present_count"]) == 1
    assert read_value(snapshot, by_key["aio_presence_policy"]) == "anyone"
    assert read_value(snapshot, by_key["aio_presence_aa_aa_aa_aa_aa_01_network"]) == "connected"
    assert read_value(snapshot, by_key["aio_presence_mirrored_mode"]) is None


def test_read_value_for_missing_person_is_none(make_engine):
    snapshot = make_engine().recompute_aggregate()
    registry = _registry()
    person = [d for d in registry.sensors if d.identity == ALICE][0]
    assert read_value(snapshot, person) is None
