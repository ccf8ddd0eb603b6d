from __future__ import annotations

import logging
from typing import Any, Iterable, List, Sequence

from mailnick.models import CleanupRule, Condition, Email, MatchCriteria, TaskMatch

logger = logging.getLogger(__name__)


def norm(value: Any, case_sensitive: bool) -> str:
    """None-safe string form, lowercased unless the condition is case sensitive."""
    text = "" if value is None else str(value)
    return text if case_sensitive else text.lower()


def matches_condition(email: Email, condition: Condition) -> bool:
    cs = condition.case_sensitive
    target = norm(email.field_value(condition.field), cs)
    op = condition.operator

    if op == "in":
        values = condition.value if isinstance(condition.value, (list, tuple)) else [condition.value]
        return any(norm(v, cs) == target for v in values)

    expected = norm(condition.value, cs)
    if op == "equals":
        return target == expected
    if op == "contains":
        return expected in target
    if op == "startsWith":
        return target.startswith(expected)
    if op == "endsWith":
        return target.endswith(expected)

    logger.debug("Unknown operator %r on field %r, condition not met", op, condition.field)
    return False


def matches(email: Email, criteria: MatchCriteria) -> bool:
    """
    Evaluate a match tree against one email.

    "all" over no conditions is true, "any" over no conditions is false.
    """
    results = (matches_condition(email, c) for c in criteria.conditions)
    if criteria.type == "all":
        return all(results)
    if criteria.type == "any":
        return any(results)
    logger.warning("Unknown criteria type %r, rule will not match", criteria.type)
    return False


def group_by_rules(
    emails: Sequence[Email],
    rules: Iterable[CleanupRule],
    hidden_rule_ids: Iterable[str] = (),
) -> List[TaskMatch]:
    hidden = set(hidden_rule_ids)
    tasks: List[TaskMatch] = []

    for rule in rules:
        if not rule.enabled:
            continue
        matched = [e for e in emails if matches(e, rule.match_criteria)]
        if not matched:
            continue
        tasks.append(
            TaskMatch(
                rule=rule,
                emails=matched,
                total_count=len(matched),
                hidden=rule.id in hidden,
            )
        )

    # sorted() is stable, so equal display orders keep rule input order.
    return sorted(tasks, key=lambda t: t.rule.display_order)
