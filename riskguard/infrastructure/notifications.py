"""
Alert notifiers

Delivers subject-facing and administrator alerts raised by the decision
policy. Every notifier raises `AlertDispatchError` on failure; the caller
logs it and keeps the recorded decision.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from riskguard.config.settings import AlertingSettings
from riskguard.models.exceptions import AlertDispatchError
from riskguard.models.interfaces import INotifier
from riskguard.utils.serialization import to_json_compatible, utc_now


class LoggingNotifier(INotifier):
    """Writes alerts to the application log and keeps the last few in memory"""

    def __init__(self, history_size: int = 100):
        self.logger = logging.getLogger(__name__)
        self.history_size = history_size
        self.sent: List[Dict[str, Any]] = []

    def _remember(self, entry: Dict[str, Any]) -> None:
        self.sent.append(entry)
        if len(self.sent) > self.history_size:
            del self.sent[0]

    async def send_to_subject(self, subject_id: str, title: str, message: str,
                              level: str = "warning", data: Optional[Dict[str, Any]] = None) -> None:
        self.logger.warning(f"[{level}] alert for subject {subject_id}: {title} - {message}")
        self._remember({"audience": "subject", "subject_id": subject_id, "title": title,
                        "message": message, "level": level, "data": data or {}})

    async def send_to_admins(self, title: str, message: str,
                             level: str = "error", data: Optional[Dict[str, Any]] = None) -> None:
        self.logger.warning(f"[{level}] admin alert: {title} - {message}")
        self._remember({"audience": "admins", "title": title, "message": message,
                        "level": level, "data": data or {}})


class WebhookNotifier(INotifier):
    """
    Posts alerts as JSON to a webhook endpoint.

    A session can be injected for connection reuse; otherwise one is opened
    per alert.
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session = session
        self.logger = logging.getLogger(__name__)

    async def _post(self, payload: Dict[str, Any]) -> None:
        body = to_json_compatible(payload)
        try:
            if self._session is not None:
                await self._post_with(self._session, body)
            else:
                timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    await self._post_with(session, body)
        except AlertDispatchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Webhook notification error: {e}")
            raise AlertDispatchError(f"Webhook delivery failed: {e}", context={"url": self.url})

    async def _post_with(self, session: aiohttp.ClientSession, body: Dict[str, Any]) -> None:
        async with session.post(self.url, json=body) as response:
            if response.status >= 400:
                raise AlertDispatchError(
                    f"Webhook responded with status {response.status}",
                    context={"url": self.url, "status": response.status},
                )
            self.logger.debug(f"Webhook notification sent: {body.get('title')}")

    async def send_to_subject(self, subject_id: str, title: str, message: str,
                              level: str = "warning", data: Optional[Dict[str, Any]] = None) -> None:
        await self._post({
            "audience": "subject",
            "subject_id": subject_id,
            "title": title,
            "message": message,
            "level": level,
            "data": data or {},
            "timestamp": utc_now(),
        })

    async def send_to_admins(self, title: str, message: str,
                             level: str = "error", data: Optional[Dict[str, Any]] = None) -> None:
        await self._post({
            "audience": "admins",
            "title": title,
            "message": message,
            "level": level,
            "data": data or {},
            "timestamp": utc_now(),
        })


class CompositeNotifier(INotifier):
    """
    Fans an alert out to several notifiers.

    Every child is attempted; if any failed, a single AlertDispatchError
    listing the failures is raised afterwards.
    """

    def __init__(self, notifiers: List[INotifier]):
        self.notifiers = list(notifiers)

    async def _fan_out(self, method: str, *args, **kwargs) -> None:
        results = await asyncio.gather(
            *(getattr(n, method)(*args, **kwargs) for n in self.notifiers),
            return_exceptions=True,
        )
        failures = [
            f"{type(n).__name__}: {r}" for n, r in zip(self.notifiers, results) if isinstance(r, Exception)
        ]
        if failures:
            raise AlertDispatchError(
                f"{len(failures)} of {len(self.notifiers)} notifiers failed",
                context={"failures": failures},
            )

    async def send_to_subject(self, subject_id: str, title: str, message: str,
                              level: str = "warning", data: Optional[Dict[str, Any]] = None) -> None:
        await self._fan_out("send_to_subject", subject_id, title, message, level=level, data=data)

    async def send_to_admins(self, title: str, message: str,
                             level: str = "error", data: Optional[Dict[str, Any]] = None) -> None:
        await self._fan_out("send_to_admins", title, message, level=level, data=data)


def create_notifier(settings: AlertingSettings) -> INotifier:
    """Logging notifier, plus a webhook when one is configured"""
    notifier = LoggingNotifier()
    if settings.enabled and settings.webhook_url:
        return CompositeNotifier([notifier, WebhookNotifier(settings.webhook_url, settings.timeout_seconds)])
    return notifier
