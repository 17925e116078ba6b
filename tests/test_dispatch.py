from datetime import date

import pytest

from cloudtrack_agent.dispatch import evaluate, is_due, should_fire_today, was_notified_on
from cloudtrack_agent.expiry import NO_EXPIRY
from cloudtrack_agent.models import GlobalSettings
from cloudtrack_agent.policy import resolve_policy

from tests.factories import TODAY, make_resource


@pytest.mark.parametrize(
    "days, threshold, last_notified, expected",
    [
        (7, 7, None, True),
        (7, 7, "2024-06-10", False),
        (7, 7, "2024-06-09", True),
        (6, 7, None, False),
        (3, 7, None, True),
        (1, 30, None, True),
        (0, 7, None, True),
        (-1, 7, None, True),
        (-5, 7, None, False),
        (2, 7, None, False),
        (30, 30, None, True),
    ],
)
def test_should_fire_today(days, threshold, last_notified, expected):
    assert should_fire_today(days, threshold, last_notified, TODAY) is expected


def test_never_fires_without_expiry():
    assert not is_due(NO_EXPIRY, 7)


def test_overdue_repeat_disabled_by_default():
    assert not is_due(-8, 7)


def test_overdue_repeat_every_n_days():
    assert is_due(-8, 7, overdue_repeat_days=7)
    assert is_due(-15, 7, overdue_repeat_days=7)
    assert not is_due(-9, 7, overdue_repeat_days=7)


def test_was_notified_on():
    resource = make_resource(notificationSettings={"lastNotified": "2024-06-10"})
    assert was_notified_on(resource, date(2024, 6, 10))
    assert not was_notified_on(resource, date(2024, 6, 11))
    assert not was_notified_on(make_resource(), date(2024, 6, 10))


def test_evaluate_due_resource():
    resource = make_resource(expiryDate="2024-06-17")
    policy = resolve_policy(resource, GlobalSettings())

    decision = evaluate(resource, policy, TODAY)

    assert decision.days_remaining == 7
    assert decision.effective_threshold == 7
    assert decision.should_notify
    assert not decision.already_sent_today
    assert decision.fire


def test_evaluate_already_sent_today():
    resource = make_resource(expiryDate="2024-06-13", notificationSettings={"lastNotified": "2024-06-10"})
    policy = resolve_policy(resource, GlobalSettings())

    decision = evaluate(resource, policy, TODAY)

    assert decision.should_notify
    assert decision.already_sent_today
    assert not decision.fire


def test_evaluate_disabled_resource_does_not_notify():
    resource = make_resource(expiryDate="2024-06-10", notificationSettings={"enabled": False})
    policy = resolve_policy(resource, GlobalSettings())

    assert not evaluate(resource, policy, TODAY).should_notify


def test_evaluate_uses_injected_dedup():
    resource = make_resource(expiryDate="2024-06-11")
    policy = resolve_policy(resource, GlobalSettings())

    decision = evaluate(resource, policy, TODAY, dedup=lambda r, d: True)

    assert not decision.fire
