"""Tests for alert notifiers."""

from unittest.mock import AsyncMock, MagicMock, Mock

import aiohttp
import pytest

from riskguard.config.settings import AlertingSettings
from riskguard.infrastructure.notifications import (
    CompositeNotifier,
    LoggingNotifier,
    WebhookNotifier,
    create_notifier,
)
from riskguard.models.exceptions import AlertDispatchError


def _session(status=200):
    response = Mock(status=status)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = Mock()
    session.post = Mock(return_value=context)
    return session


class TestLoggingNotifier:
    """Test the log-only notifier"""

    @pytest.mark.asyncio
    async def test_records_alerts(self):
        notifier = LoggingNotifier()

        await notifier.send_to_subject("user-1", "Unusual Activity Detected", "Check your account")
        await notifier.send_to_admins("Behavioral Anomaly Alert", "Risk 80%", data={"risk_score": 0.8})

        assert [entry["audience"] for entry in notifier.sent] == ["subject", "admins"]
        assert notifier.sent[0]["level"] == "warning"
        assert notifier.sent[1]["level"] == "error"
        assert notifier.sent[1]["data"] == {"risk_score": 0.8}

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        notifier = LoggingNotifier(history_size=2)

        for i in range(3):
            await notifier.send_to_admins(f"alert {i}", "message")

        assert [entry["title"] for entry in notifier.sent] == ["alert 1", "alert 2"]


class TestWebhookNotifier:
    """Test webhook delivery through an injected aiohttp session"""

    @pytest.mark.asyncio
    async def test_posts_json_payload(self):
        session = _session()
        notifier = WebhookNotifier("https://hooks.example.com/alerts", session=session)

        await notifier.send_to_subject("user-1", "Unusual Activity Detected", "Check your account",
                                       data={"risk_score": 0.9})

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://hooks.example.com/alerts"
        assert body["audience"] == "subject"
        assert body["subject_id"] == "user-1"
        assert body["data"] == {"risk_score": 0.9}
        assert isinstance(body["timestamp"], str)

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        notifier = WebhookNotifier("https://hooks.example.com/alerts", session=_session(status=503))

        with pytest.raises(AlertDispatchError) as exc_info:
            await notifier.send_to_admins("Security Alert", "message")

        assert exc_info.value.context["status"] == 503

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        session = Mock()
        session.post = Mock(side_effect=aiohttp.ClientConnectionError("connection refused"))
        notifier = WebhookNotifier("https://hooks.example.com/alerts", session=session)

        with pytest.raises(AlertDispatchError):
            await notifier.send_to_admins("Security Alert", "message")


class TestCompositeNotifier:
    """Test fan-out delivery"""

    @pytest.mark.asyncio
    async def test_all_children_attempted(self):
        healthy = LoggingNotifier()
        failing = Mock()
        failing.send_to_admins = AsyncMock(side_effect=AlertDispatchError("down"))
        notifier = CompositeNotifier([failing, healthy])

        with pytest.raises(AlertDispatchError) as exc_info:
            await notifier.send_to_admins("Security Alert", "message")

        assert len(healthy.sent) == 1
        assert len(exc_info.value.context["failures"]) == 1

    @pytest.mark.asyncio
    async def test_success(self):
        first, second = LoggingNotifier(), LoggingNotifier()

        await CompositeNotifier([first, second]).send_to_subject("user-1", "title", "message")

        assert len(first.sent) == len(second.sent) == 1


class TestCreateNotifier:
    """Test notifier selection from settings"""

    def test_logging_only_without_webhook(self):
        assert isinstance(create_notifier(AlertingSettings()), LoggingNotifier)

    def test_webhook_added_when_configured(self):
        notifier = create_notifier(AlertingSettings(webhook_url="https://hooks.example.com/alerts"))

        assert isinstance(notifier, CompositeNotifier)
        assert isinstance(notifier.notifiers[1], WebhookNotifier)

    def test_disabled_alerting_ignores_webhook(self):
        notifier = create_notifier(AlertingSettings(enabled=False, webhook_url="https://hooks.example.com/alerts"))

        assert isinstance(notifier, LoggingNotifier)
