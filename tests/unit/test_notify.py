"""
Unit tests for the notification center.
"""

import logging

import pytest

from backoffice.schoolsync.notify import NotificationCenter, Severity


class TestNotificationCenter:
    """Tests for NotificationCenter."""

    def test_history_is_newest_first(self):
        center = NotificationCenter()

        center("first", Severity.SUCCESS)
        center("second", Severity.INFO)

        assert [n.message for n in center.history] == ["second", "first"]
        assert center.current.message == "second"

    def test_history_is_bounded(self):
        center = NotificationCenter(limit=3)

        for i in range(5):
            center(f"message {i}", Severity.SUCCESS)

        assert [n.message for n in center.history] == ["message 4", "message 3", "message 2"]

    def test_disabled_still_shows_errors(self):
        center = NotificationCenter(enabled=False)

        center("saved", Severity.SUCCESS)
        assert center.current is None

        center("Sync failed", Severity.ERROR)
        assert center.current.severity is Severity.ERROR
        assert len(center.history) == 2

    def test_dismiss_and_clear(self):
        center = NotificationCenter()
        center("saved", Severity.SUCCESS)

        center.dismiss()
        center.clear()

        assert center.current is None
        assert center.history == []

    def test_subscribe(self):
        center = NotificationCenter()
        received = []

        unsubscribe = center.subscribe(received.append)
        center("one", Severity.INFO)
        unsubscribe()
        center("two", Severity.INFO)

        assert [n.message for n in received] == ["one"]

    def test_configure_from_settings(self):
        center = NotificationCenter()

        center.configure({"enableNotifications": False, "notificationLimit": 5})

        assert not center.enabled
        assert center.limit == 5

    @pytest.mark.parametrize("limit", [None, "many", 0])
    def test_configure_keeps_limit_for_unusable_values(self, limit):
        center = NotificationCenter(limit=7)

        center.configure({"enableNotifications": None, "notificationLimit": limit})

        assert center.limit == 7
        assert center.enabled

    def test_errors_are_logged_as_warnings(self, caplog):
        center = NotificationCenter()

        with caplog.at_level(logging.INFO, logger="backoffice.schoolsync.notify"):
            center("Sync failed: offline", Severity.ERROR)

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].severity == "error"
