# File: riskguard/core/threat/analyzer.py

import asyncio
import ipaddress
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from riskguard.config.settings import ThreatSettings
from riskguard.core.threat.events import SecurityEventLog
from riskguard.models.interfaces import ICacheBackend, IDeviceTrust, ILocationService
from riskguard.models.threat import LoginEvent, RiskLevel, ThreatAssessment, ThreatKind

# Loopback and RFC 1918 ranges; logins from inside the perimeter are unexpected
PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
)

RECOMMENDATIONS: Dict[ThreatKind, List[str]] = {
    ThreatKind.BRUTE_FORCE: [
        "Enable account lockout after failed attempts",
        "Implement CAPTCHA for login attempts",
    ],
    ThreatKind.SUSPICIOUS_IP: [
        "Block suspicious IP addresses",
        "Enable geo-blocking for high-risk regions",
    ],
    ThreatKind.ACCOUNT_TAKEOVER: [
        "Require additional verification for password changes",
        "Monitor for unusual account activity",
    ],
    ThreatKind.GEOGRAPHIC_ANOMALY: [
        "Send location verification notification",
        "Require 2FA for login from new locations",
    ],
    ThreatKind.UNUSUAL_PATTERN: [
        "Verify login activity with the account owner",
    ],
    ThreatKind.DEVICE_ANOMALY: [
        "Require 2FA for login from unrecognized devices",
    ],
}

HIGH_RISK_SCORE = 50
HIGH_RISK_RECOMMENDATIONS = [
    "Immediate account lockdown recommended",
    "Security team notification required",
]

ThreatCheck = Callable[[LoginEvent], Awaitable[bool]]


def brute_force_key(identity: str, ip_address: str) -> str:
    return f"brute_force:{identity.lower()}:{ip_address}"


def is_private_ip(ip_address: str) -> bool:
    try:
        address = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    return any(address.version == net.version and address in net for net in PRIVATE_NETWORKS)


def recommendations_for(threats: List[ThreatKind], risk_score: int) -> List[str]:
    """Deterministic advice in ThreatKind declaration order, deduplicated"""
    fired = set(threats)
    advice: List[str] = []
    for kind in ThreatKind:
        if kind in fired:
            advice.extend(RECOMMENDATIONS.get(kind, []))
    if risk_score >= HIGH_RISK_SCORE:
        advice.extend(HIGH_RISK_RECOMMENDATIONS)
    return list(dict.fromkeys(advice))


class ThreatAnalyzer:
    """
    Multi-signal login threat analysis

    Each ThreatKind has an independent check registered under it. Checks run
    concurrently; fired kinds add their configured weight and the total is
    clamped to [0, 100]. Checks that need account history are skipped for
    identities that do not resolve to a subject.
    """

    def __init__(
        self,
        cache: ICacheBackend,
        events: SecurityEventLog,
        device_trust: IDeviceTrust,
        location: ILocationService,
        settings: Optional[ThreatSettings] = None,
    ):
        self.cache = cache
        self.events = events
        self.device_trust = device_trust
        self.location = location
        self.settings = settings or ThreatSettings()
        self.logger = logging.getLogger(__name__)

        self._checks: Dict[ThreatKind, ThreatCheck] = {
            ThreatKind.BRUTE_FORCE: self.is_brute_force,
            ThreatKind.SUSPICIOUS_IP: self.is_suspicious_ip,
            ThreatKind.UNUSUAL_PATTERN: self.is_unusual_pattern,
            ThreatKind.ACCOUNT_TAKEOVER: self.is_account_takeover,
            ThreatKind.GEOGRAPHIC_ANOMALY: self.is_geographic_anomaly,
            ThreatKind.DEVICE_ANOMALY: self.is_device_anomaly,
            ThreatKind.TIME_ANOMALY: self.is_time_anomaly,
        }

    def register_check(self, kind: ThreatKind, check: ThreatCheck) -> None:
        """Replace the check evaluated for `kind`"""
        self._checks[kind] = check

    async def analyze_login_attempt(self, event: LoginEvent) -> ThreatAssessment:
        """
        Evaluate every registered check for one login attempt.

        Raises:
            CollaboratorUnavailable: If the cache or event history cannot be read
        """
        kinds = list(self._checks)
        results = await asyncio.gather(*(self._checks[kind](event) for kind in kinds))
        threats = [kind for kind in ThreatKind if kind in self._checks and results[kinds.index(kind)]]

        raw_score = sum(self.settings.weights.for_kind(kind) for kind in threats)
        risk_score = max(0, min(100, raw_score))
        assessment = ThreatAssessment(
            threats=threats,
            risk_score=risk_score,
            risk_level=RiskLevel.from_score(risk_score),
            recommendations=recommendations_for(threats, risk_score),
        )
        self.logger.info(
            f"Login assessed for {event.identity} from {event.ip_address}: "
            f"score={risk_score} level={assessment.risk_level.value} threats={[t.value for t in threats]}"
        )
        return assessment

    # Individual checks

    async def is_brute_force(self, event: LoginEvent) -> bool:
        attempts = await self.cache.get(brute_force_key(event.identity, event.ip_address))
        return int(attempts or 0) >= self.settings.max_failed_attempts

    async def is_suspicious_ip(self, event: LoginEvent) -> bool:
        if is_private_ip(event.ip_address):
            return True
        failures = await self.events.failed_logins_from_ip(event.ip_address, event.timestamp)
        return failures > self.settings.ip_failure_threshold

    async def is_unusual_pattern(self, event: LoginEvent) -> bool:
        if not event.subject_id:
            return False

        normal_hours = await self.events.normal_login_hours(event.subject_id, event.timestamp)
        if event.timestamp.hour not in normal_hours:
            return True

        recent = await self.events.successful_logins(
            event.subject_id, event.timestamp - timedelta(hours=24), event.timestamp
        )
        return len(recent) > self.settings.frequent_login_threshold

    async def is_account_takeover(self, event: LoginEvent) -> bool:
        if not event.subject_id:
            return False
        if await self.events.password_changes(event.subject_id, event.timestamp) > 0:
            return True
        failures = await self.events.failed_logins_from_ip(event.ip_address, event.timestamp)
        return failures > self.settings.takeover_failure_threshold

    async def is_geographic_anomaly(self, event: LoginEvent) -> bool:
        if not event.subject_id or event.location is None:
            return False
        normal_locations = await self.events.normal_locations(event.subject_id, event.timestamp)
        radius = self.settings.normal_location_radius_km
        return not any(
            self.location.distance_km(event.location, known) < radius for known in normal_locations
        )

    async def is_device_anomaly(self, event: LoginEvent) -> bool:
        if not event.subject_id:
            return False
        return not await self.device_trust.is_device_trusted(event.subject_id, event.device_fingerprint)

    async def is_time_anomaly(self, event: LoginEvent) -> bool:
        if not event.subject_id:
            return False
        last_login = await self.events.last_successful_login(event.subject_id, event.timestamp)
        if last_login is None:
            return False
        elapsed = (event.timestamp - last_login).total_seconds()
        return elapsed < self.settings.rapid_login_seconds or elapsed > self.settings.dormant_days * 86400
