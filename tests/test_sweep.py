from unittest.mock import MagicMock

from cloudtrack_agent import db
from cloudtrack_agent.models import ChannelResult
from cloudtrack_agent.notifier import NotificationResult
from cloudtrack_agent.sweep import LAST_SWEEP_KEY, run_sweep

from tests.factories import TODAY


def _seed(conn):
    db.save_global_settings(conn, {"reminderDays": 7, "telegram": {"enabled": True, "chatId": "42"}})
    db.insert_resource(conn, {"id": "due", "name": "web-01", "type": "VPS", "expiryDate": "2024-06-17"})
    db.insert_resource(conn, {"id": "later", "name": "example.com", "type": "DOMAIN", "expiryDate": "2024-08-01"})
    db.insert_resource(conn, {"id": "forever", "name": "root", "type": "ACCOUNT"})


def _notifier(ok=True):
    notifier = MagicMock()
    if ok:
        notifier.notify.return_value = NotificationResult(
            channels_sent=["Telegram"], results=[ChannelResult("Telegram", True)]
        )
    else:
        notifier.notify.return_value = NotificationResult(
            results=[ChannelResult("Telegram", False, "Telegram API error (403): Forbidden")]
        )
    return notifier


def test_sweep_notifies_due_resources(conn, app_config):
    _seed(conn)
    notifier = _notifier()

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert report.processed == 3
    assert report.notifications_sent == 1
    assert report.to_dict()["details"] == [
        {"id": "due", "name": "web-01", "daysRemaining": 7, "channels": ["Telegram"]}
    ]
    notifier.notify.assert_called_once()
    assert db.get_resource(conn, "due").notification_settings.last_notified == "2024-06-10"
    assert db.get_meta(conn, LAST_SWEEP_KEY) == "2024-06-10"


def test_second_sweep_same_day_sends_nothing(conn, app_config):
    _seed(conn)
    notifier = _notifier()

    run_sweep(conn, app_config, today=TODAY, notifier=notifier)
    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert report.notifications_sent == 0
    assert notifier.notify.call_count == 1


def test_failed_delivery_leaves_state_untouched(conn, app_config):
    _seed(conn)
    notifier = _notifier(ok=False)

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert report.notifications_sent == 0
    assert report.failed == ["due"]
    assert db.get_resource(conn, "due").notification_settings is None

    # next sweep retries
    run_sweep(conn, app_config, today=TODAY, notifier=notifier)
    assert notifier.notify.call_count == 2


def test_sweep_preserves_existing_override(conn, app_config):
    db.insert_resource(conn, {
        "id": "r1",
        "name": "pbx",
        "type": "PHONE_NUMBER",
        "expiryDate": "2024-06-11",
        "notificationSettings": {"enabled": True, "useGlobal": False, "channels": {"email": True}},
    })

    run_sweep(conn, app_config, today=TODAY, notifier=_notifier())

    stored = db.get_resource_dict(conn, "r1")["notificationSettings"]
    assert stored == {
        "enabled": True,
        "useGlobal": False,
        "channels": {"email": True},
        "lastNotified": "2024-06-10",
    }


def test_disabled_resource_is_not_notified(conn, app_config):
    db.insert_resource(conn, {
        "id": "r1",
        "name": "pbx",
        "type": "PHONE_NUMBER",
        "expiryDate": "2024-06-10",
        "notificationSettings": {"enabled": False},
    })
    notifier = _notifier()

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert report.notifications_sent == 0
    notifier.notify.assert_not_called()


def test_one_failing_resource_does_not_abort_sweep(conn, app_config):
    _seed(conn)
    db.insert_resource(conn, {"id": "also-due", "name": "db-01", "type": "VPS", "expiryDate": "2024-06-13"})
    notifier = _notifier()
    ok_result = notifier.notify.return_value
    notifier.notify.side_effect = [RuntimeError("boom"), ok_result]

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert notifier.notify.call_count == 2
    assert report.notifications_sent == 1


def test_overdue_repeat_days(conn, app_config):
    app_config.sweep.overdue_repeat_days = 7
    db.insert_resource(conn, {"id": "late", "name": "old", "type": "VPS", "expiryDate": "2024-06-02"})
    notifier = _notifier()

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert [d.days_remaining for d in report.details] == [-8]


def test_unreadable_row_does_not_abort_sweep(conn, app_config):
    _seed(conn)
    db.insert_resource(conn, {"id": "bad", "name": "legacy", "type": "VPS", "expiryDate": "2024-06-11"})
    # rows written before overrides were validated
    conn.execute(
        "UPDATE resources SET notification_settings = ? WHERE id = ?",
        ('{"useGlobal": false, "reminderDays": "soon"}', "bad"),
    )
    conn.commit()
    notifier = _notifier()

    report = run_sweep(conn, app_config, today=TODAY, notifier=notifier)

    assert [d.id for d in report.details] == ["due"]
    assert db.get_resource(conn, "due").notification_settings.last_notified == "2024-06-10"


def test_bulk_import_with_bad_override_keeps_sweep_working(conn, app_config):
    _seed(conn)
    count = db.bulk_import(conn, [
        {"id": "bad", "name": "x", "type": "VPS", "notificationSettings": {"useGlobal": False, "reminderDays": "soon"}},
        {"id": "bad2", "name": "y", "type": "VPS", "notificationSettings": {"channels": ["telegram"]}},
    ])

    report = run_sweep(conn, app_config, today=TODAY, notifier=_notifier())

    assert count == 0
    assert [d.id for d in report.details] == ["due"]
