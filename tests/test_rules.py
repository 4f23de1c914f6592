"""Tests for escalation rules: matching, consolidation, loading and storage."""

import threading

import pytest
import yaml

from sentinel.errors import RuleValidationError
from sentinel.models.content import DetectionResult, Engagement
from sentinel.rules.engine import RuleEngine, consolidate_actions, is_viral, rule_matches
from sentinel.rules.loader import default_rules, load_rules, rule_from_dict, rule_to_dict
from sentinel.rules.models import (
    ActionType,
    EscalationRule,
    ResponseAction,
    RuleConditions,
    ScoreRange,
    Severity,
    action_priority,
)
from sentinel.rules.rule_store import RuleStore


def _action(kind, severity, reason=""):
    return ResponseAction(ActionType(kind), Severity(severity), reason=reason)


def _keys(actions):
    return [(a.type.value, a.severity.value) for a in actions]


# --- Virality ---


@pytest.mark.parametrize(
    "engagement,viral",
    [
        (Engagement(likes=900, shares=50, comments=40), False),
        (Engagement(likes=900, shares=60, comments=41), True),
        (Engagement(shares=101), True),
        (Engagement(views=10_001), True),
        (Engagement(views=10_000), False),
    ],
)
def test_is_viral_any_indicator(engagement, viral):
    assert is_viral(engagement) is viral


# --- Matching ---


def test_unspecified_conditions_match_vacuously(make_content):
    rule = EscalationRule(id="all", name="all", actions=(_action("flag", "low"),))
    assert rule_matches(rule, DetectionResult(0.1), make_content())


def test_disabled_rule_never_matches(make_content):
    rule = EscalationRule(id="off", name="off", actions=(_action("flag", "low"),), enabled=False)
    assert not rule_matches(rule, DetectionResult(0.9), make_content())


def test_every_condition_must_hold(make_content, detection):
    rule = EscalationRule(
        id="r",
        name="r",
        conditions=RuleConditions(
            harmfulness_score=ScoreRange(min=0.6, max=0.85),
            confidence_min=0.5,
            categories=("hate_speech",),
            platforms=("twitter",),
        ),
        actions=(_action("flag", "medium"),),
    )
    tweet = make_content(platform="twitter")
    assert rule_matches(rule, detection(0.7, "hate_speech", confidence=0.6), tweet)
    assert not rule_matches(rule, detection(0.9, "hate_speech", confidence=0.6), tweet)
    assert not rule_matches(rule, detection(0.7, "hate_speech", confidence=0.4), tweet)
    assert not rule_matches(rule, detection(0.7, "spam", confidence=0.6), tweet)
    assert not rule_matches(rule, detection(0.7, "hate_speech", confidence=0.6), make_content(platform="reddit"))


def test_consolidation_keeps_first_pair_and_orders_by_weight():
    high_rule = _action("escalate", "high", reason="from high-priority rule")
    low_rule = _action("escalate", "high", reason="from low-priority rule")
    actions = consolidate_actions(
        [_action("notify", "critical"), high_rule, _action("remove", "high"), low_rule]
    )
    assert _keys(actions) == [("remove", "high"), ("escalate", "high"), ("notify", "critical")]
    assert actions[1].reason == "from high-priority rule"


def test_consolidation_is_idempotent():
    raw = [
        _action("flag", "medium"),
        _action("warn", "medium"),
        _action("flag", "medium"),
        _action("quarantine", "high"),
        _action("remove", "critical"),
    ]
    once = consolidate_actions(raw)
    twice = consolidate_actions(once)
    assert once == twice
    assert len(set(a.key for a in once)) == len(once)


def test_action_priority_weights():
    assert action_priority(_action("remove", "critical")) == 20
    assert action_priority(_action("quarantine", "high")) == 12
    assert action_priority(_action("notify", "low")) == 1


def test_default_rules_self_harm_scenario(make_content, detection):
    engine = RuleEngine()
    actions = engine.match(detection(0.97, "self_harm"), make_content())
    assert ("remove", "critical") in _keys(actions)
    assert ("notify", "critical") in _keys(actions)
    # the generic high-harm rule contributes a medium escalation too
    assert ("escalate", "medium") in _keys(actions)
    assert _keys(actions)[0] == ("remove", "critical")


def test_default_rules_viral_violence_scenario(make_content, detection):
    engine = RuleEngine()
    actions = engine.match(detection(0.80, "violence"), make_content(platform="twitter", shares=150))
    keys = _keys(actions)
    assert ("quarantine", "high") in keys
    assert ("escalate", "high") in keys
    assert all(kind != "remove" for kind, _ in keys)


def test_violence_without_virality_does_not_quarantine(make_content, detection):
    actions = RuleEngine().match(detection(0.80, "violence"), make_content(shares=10))
    assert ("quarantine", "high") not in _keys(actions)


def test_reload_swaps_whole_snapshot(make_content, detection):
    engine = RuleEngine()
    before = engine.snapshot
    flag_all = EscalationRule(id="flag_all", name="Flag all", actions=(_action("flag", "low"),))
    after = engine.reload([flag_all])

    assert after.version == before.version + 1
    assert engine.rules() == [flag_all]
    # a match pinned to the old snapshot still sees the old rules
    pinned = engine.match(detection(0.97, "self_harm"), make_content(), snapshot=before)
    assert ("remove", "critical") in _keys(pinned)
    assert _keys(engine.match(detection(0.97, "self_harm"), make_content())) == [("flag", "low")]


def test_reload_rejects_duplicate_ids():
    rule = EscalationRule(id="dup", name="dup", actions=(_action("flag", "low"),))
    engine = RuleEngine([])
    with pytest.raises(ValueError):
        engine.reload([rule, rule])
    assert engine.snapshot.version == 1


def test_concurrent_reloads_produce_distinct_versions():
    engine = RuleEngine([])
    rules = default_rules()
    threads = [threading.Thread(target=engine.reload, args=(rules,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert engine.snapshot.version == 9


# --- Loader ---


def test_rule_dict_round_trip():
    for rule in default_rules():
        assert rule_from_dict(rule_to_dict(rule)) == rule


@pytest.mark.parametrize(
    "data",
    [
        {"name": "no id", "actions": [{"type": "flag", "severity": "low"}]},
        {"id": "no_actions", "actions": []},
        {"id": "bad_type", "actions": [{"type": "ban", "severity": "low"}]},
        {"id": "bad_range", "conditions": {"harmfulness_score": {"min": 0.9, "max": 0.1}},
         "actions": [{"type": "flag", "severity": "low"}]},
        {"id": "out_of_range", "conditions": {"harmfulness_score": {"min": 1.5}},
         "actions": [{"type": "flag", "severity": "low"}]},
        {"id": "scalar_categories", "conditions": {"categories": "violence"},
         "actions": [{"type": "flag", "severity": "low"}]},
        {"id": "scalar_platforms", "conditions": {"platforms": "tiktok"},
         "actions": [{"type": "flag", "severity": "low"}]},
        {"id": "actions_mapping", "actions": {"type": "flag", "severity": "low"}},
        {"id": "action_string", "actions": ["flag"]},
    ],
)
def test_rule_from_dict_rejects_bad_input(data):
    with pytest.raises(RuleValidationError):
        rule_from_dict(data)


def test_load_rules_from_yaml(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "rules": [
                    {
                        "id": "spam_flag",
                        "name": "Flag spam",
                        "priority": 10,
                        "conditions": {"categories": ["spam"], "harmfulness_score": {"min": 0.5}},
                        "actions": [{"type": "flag", "severity": "low", "reason": "Spam"}],
                    }
                ]
            }
        )
    )
    rules = load_rules(path)
    assert len(rules) == 1
    assert rules[0].conditions.categories == ("spam",)
    assert rules[0].conditions.harmfulness_score == ScoreRange(min=0.5)


# --- Rule store ---


def test_rule_store_seeds_defaults(tmp_path):
    store = RuleStore(tmp_path)
    assert {r.id for r in store.rules()} == {
        "critical_self_harm",
        "high_violence_viral",
        "moderate_hate_speech",
        "dangerous_challenge_tiktok",
        "low_confidence_high_harm",
    }


def test_rule_store_crud(tmp_path):
    store = RuleStore(tmp_path, seed_defaults=False)
    created = store.create_rule(
        {"id": "r1", "name": "Rule one", "actions": [{"type": "flag", "severity": "low"}]}
    )
    assert created["created_at"]
    assert store.get_rule("r1")["name"] == "Rule one"
    assert store.get_rule("missing") is None
    with pytest.raises(ValueError):
        store.create_rule({"id": "r1", "actions": [{"type": "flag", "severity": "low"}]})

    updated = store.update_rule("r1", priority=50)
    assert updated["priority"] == 50
    with pytest.raises(RuleValidationError):
        store.update_rule("r1", actions=[])

    assert store.toggle_rule("r1", False)["enabled"] is False
    assert store.update_rule("missing", priority=1) is None
    assert store.delete_rule("r1") is True
    assert store.delete_rule("r1") is False


def test_rule_store_load_into_engine(tmp_path, make_content, detection):
    store = RuleStore(tmp_path)
    store.toggle_rule("critical_self_harm", False)
    engine = RuleEngine([])
    snapshot = store.load_into(engine)

    assert len(snapshot.rules) == 5
    actions = engine.match(detection(0.97, "self_harm"), make_content())
    assert ("remove", "critical") not in _keys(actions)


def test_rule_store_import_file_replaces_all(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  - id: only\n"
        "    actions:\n"
        "      - {type: notify, severity: high}\n"
    )
    store = RuleStore(tmp_path / "store")
    store.import_file(path)
    assert [r.id for r in store.rules()] == ["only"]


def test_load_rules_rejects_scalar_category(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  - id: violence_only\n"
        "    conditions:\n"
        "      categories: violence\n"
        "    actions:\n"
        "      - {type: flag, severity: low}\n"
    )
    with pytest.raises(RuleValidationError, match="categories must be a list"):
        load_rules(path)
