import pytest

from services.drive_engine.narrative import (
    ContentLookup,
    cap_reason_key,
    jung_annotation_key,
    partner_link_key,
    partner_script_key,
    transfer_advice_key,
    value_link_key,
)


@pytest.fixture
def lookup():
    return ContentLookup({
        "en": {
            "transfer_advice.Achievement.Exploration": "Your curiosity is being spent on results.",
            "relationship.scripts.Care": "Someone who looks after {name}.",
        },
        "de": {
            "transfer_advice.Achievement.Exploration": "Deine Neugier fliesst in Ergebnisse.",
        },
    })


def test_key_builders():
    assert transfer_advice_key("Achievement", "Exploration") == "transfer_advice.Achievement.Exploration"
    assert partner_script_key("Value") == "relationship.scripts.Value"
    assert partner_link_key("Care", "Affiliation") == "relationship.links.Care.Affiliation"
    assert value_link_key("Exploration") == "relationship.valueLinks.Exploration"


def test_cap_reason_keys_match_shipped_tables(engine_config):
    """The shipped cap reason keys follow the same naming scheme as the builder."""
    for rule in engine_config.partner.caps:
        for component in rule.components:
            assert cap_reason_key(rule.partner, component.drive, component.source) == component.reason_key


def test_jung_annotation_key():
    assert jung_annotation_key("energy", "Dominant Extrovert") == "jung.energy.E_dominance"
    assert jung_annotation_key("perception", "Conceptual Visionary") == "jung.perception.N_vision"
    assert jung_annotation_key("energy", "Nobody In Particular") is None


def test_lookup_prefers_requested_locale(lookup):
    assert lookup.locales == ["de", "en"]
    assert lookup.text("transfer_advice.Achievement.Exploration", "de") == "Deine Neugier fliesst in Ergebnisse."


def test_lookup_falls_back_to_default_locale(lookup):
    assert lookup.text("relationship.scripts.Care", "de", name="you") == "Someone who looks after you."
    assert lookup.has("relationship.scripts.Care", "fr")


def test_missing_key_returns_the_key(lookup):
    assert lookup.get("relationship.scripts.Value") is None
    assert lookup.text("relationship.scripts.Value", "de") == "relationship.scripts.Value"
    assert not lookup.has("relationship.scripts.Value")


def test_engine_output_keys_resolve(engine, route_tests):
    """Keys emitted by the engine are plain strings the lookup can resolve."""
    snapshot = engine.compute_snapshot(*route_tests)
    flow = engine.instrumentation_report(snapshot)
    keys = [r.advice_key for item in flow.items for r in item.reversals]
    content = ContentLookup({"en": {key: "advice" for key in keys}})
    assert keys and all(content.has(key) for key in keys)
