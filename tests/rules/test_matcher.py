from __future__ import annotations

import pytest
from pydantic import ValidationError

from mailnick.models import Condition, MatchCriteria
from mailnick.rules.matcher import group_by_rules, matches, matches_condition
from mailnick.rules.schema import criteria_from_dict
from tests.helpers import make_email, make_rule


def test_empty_all_matches_and_empty_any_does_not() -> None:
    email = make_email()

    assert matches(email, MatchCriteria(type="all", conditions=[])) is True
    assert matches(email, MatchCriteria(type="any", conditions=[])) is False


def test_contains_is_case_insensitive_by_default() -> None:
    email = make_email(subject="Weekly Digest")

    assert matches_condition(email, Condition("subject", "contains", "digest")) is True
    assert matches_condition(email, Condition("subject", "contains", "digest", case_sensitive=True)) is False
    assert matches_condition(email, Condition("subject", "contains", "Digest", case_sensitive=True)) is True


def test_string_operators_on_sender_fields() -> None:
    email = make_email(sender="News <news@digest.example.com>", sender_domain="digest.example.com")

    assert matches_condition(email, Condition("fromDomain", "equals", "DIGEST.example.com"))
    assert matches_condition(email, Condition("from", "startsWith", "news"))
    assert matches_condition(email, Condition("fromDomain", "endsWith", ".com"))
    assert not matches_condition(email, Condition("fromDomain", "endsWith", ".org"))


def test_in_operator_accepts_list_or_single_value() -> None:
    email = make_email(sender_domain="shop.example.com")

    assert matches_condition(email, Condition("fromDomain", "in", ["a.test", "Shop.Example.com"]))
    assert matches_condition(email, Condition("fromDomain", "in", "shop.example.com"))
    assert not matches_condition(email, Condition("fromDomain", "in", ["a.test", "b.test"]))


def test_case_sensitive_conditions_compare_exactly() -> None:
    email = make_email(sender="Shop <Deals@Shop.Example.com>", sender_domain="Shop.Example.com")

    assert matches_condition(email, Condition("fromDomain", "in", ["Shop.Example.com"], case_sensitive=True))
    assert not matches_condition(email, Condition("fromDomain", "in", ["shop.example.com"], case_sensitive=True))
    assert matches_condition(email, Condition("fromDomain", "equals", "Shop.Example.com", case_sensitive=True))
    assert not matches_condition(email, Condition("fromDomain", "equals", "shop.example.com", case_sensitive=True))
    assert matches_condition(email, Condition("from", "startsWith", "Shop", case_sensitive=True))
    assert not matches_condition(email, Condition("from", "startsWith", "shop", case_sensitive=True))
    assert matches_condition(email, Condition("fromDomain", "endsWith", ".Example.com", case_sensitive=True))
    assert not matches_condition(email, Condition("fromDomain", "endsWith", ".example.com", case_sensitive=True))


def test_missing_field_value_is_treated_as_empty_string() -> None:
    email = make_email(category=None)

    assert matches_condition(email, Condition("category", "equals", ""))
    assert not matches_condition(email, Condition("category", "contains", "promo"))


def test_unknown_operator_never_matches() -> None:
    email = make_email()

    assert matches_condition(email, Condition("subject", "regex", ".*")) is False
    assert matches(email, MatchCriteria(type="any", conditions=[Condition("subject", "regex", ".*")])) is False


def test_any_and_all_combinators() -> None:
    email = make_email(subject="Your receipt", sender_domain="shop.example.com")
    hit = Condition("subject", "contains", "receipt")
    miss = Condition("fromDomain", "equals", "bank.example.com")

    assert matches(email, MatchCriteria(type="any", conditions=[miss, hit]))
    assert not matches(email, MatchCriteria(type="all", conditions=[miss, hit]))


def test_group_by_rules_orders_by_display_order_and_skips_empty_groups() -> None:
    digest = Condition("subject", "contains", "digest")
    emails = [make_email("m1", subject="Weekly Digest"), make_email("m2", subject="Invoice")]
    rules = [
        make_rule("r3", display_order=3, conditions=[digest]),
        make_rule("r1", display_order=1, criteria_type="all"),
        make_rule("r2", display_order=2, conditions=[digest]),
        make_rule("r0", display_order=0, conditions=[Condition("subject", "equals", "nothing")]),
    ]

    tasks = group_by_rules(emails, rules)

    assert [t.rule.id for t in tasks] == ["r1", "r2", "r3"]
    assert tasks[0].total_count == 2
    assert [e.id for e in tasks[1].emails] == ["m1"]


def test_group_by_rules_skips_disabled_and_flags_hidden() -> None:
    emails = [make_email("m1")]
    rules = [
        make_rule("off", display_order=0, enabled=False),
        make_rule("on", display_order=1),
    ]

    tasks = group_by_rules(emails, rules, hidden_rule_ids=["on"])

    assert [t.rule.id for t in tasks] == ["on"]
    assert tasks[0].hidden is True


def test_group_by_rules_keeps_input_order_on_ties() -> None:
    emails = [make_email("m1")]
    rules = [make_rule("b", display_order=1), make_rule("a", display_order=1)]

    tasks = group_by_rules(emails, rules)

    assert [t.rule.id for t in tasks] == ["b", "a"]


def test_criteria_from_dict_reads_camel_case_flags() -> None:
    criteria = criteria_from_dict(
        {
            "type": "any",
            "conditions": [
                {"field": "fromDomain", "operator": "in", "value": ["a.test", "b.test"]},
                {"field": "subject", "operator": "contains", "value": "Sale", "caseSensitive": True},
            ],
        }
    )

    assert criteria.type == "any"
    assert criteria.conditions[0].value == ["a.test", "b.test"]
    assert criteria.conditions[0].case_sensitive is False
    assert criteria.conditions[1].case_sensitive is True


def test_criteria_from_dict_rejects_unknown_field() -> None:
    with pytest.raises(ValidationError):
        criteria_from_dict({"type": "all", "conditions": [{"field": "body", "operator": "equals", "value": "x"}]})
