"""
RiskGuard Risk Engine

Facade the authentication path calls into. Wires the rate limiter, the
behavior profile/anomaly pipeline, the login threat analyzer and the decision
policy over injected collaborators, and owns the audit trail.

Usage:
    engine = create_risk_engine(get_settings())

    verdict = await engine.assess_login(LoginEvent(identity="a@example.com", ip_address="203.0.113.7"))
    if verdict.outcome.decision is Decision.BLOCK:
        ...
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from riskguard.config.settings import CacheBackendType, RiskGuardSettings
from riskguard.core.behavior.anomaly_scorer import (
    AnomalyScorer,
    insufficient_data_result,
    validate_current_behavior,
)
from riskguard.core.behavior.profile_builder import SAMPLES_COLLECTION, BehaviorProfileBuilder
from riskguard.core.behavior.tracking import BehavioralTracking
from riskguard.core.decision.policy import DecisionPolicy
from riskguard.core.jobs import JobRegistry
from riskguard.core.threat.analyzer import ThreatAnalyzer, brute_force_key
from riskguard.core.threat.events import SecurityEventLog
from riskguard.infrastructure.caching.backends import create_cache_backend
from riskguard.infrastructure.devices import InMemoryDeviceRegistry
from riskguard.infrastructure.location import HaversineLocationService
from riskguard.infrastructure.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from riskguard.infrastructure.notifications import create_notifier
from riskguard.infrastructure.persistence.memory_store import InMemoryRecordStore
from riskguard.infrastructure.protection.rate_limiter import CacheRateLimiter
from riskguard.models.behavioral import AnomalyResult, BehaviorSample, TrackingSettings
from riskguard.models.exceptions import CollaboratorUnavailable, RateLimitExceeded, ValidationError
from riskguard.models.interfaces import (
    ICacheBackend,
    IDeviceTrust,
    ILocationService,
    INotifier,
    IRecordStore,
    RecordFilter,
)
from riskguard.models.threat import (
    Decision,
    DecisionOutcome,
    LoginEvent,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
    Severity,
    ThreatAssessment,
)
from riskguard.utils.serialization import utc_now

ANALYSIS_COLLECTION = "behavioral_analysis"

BEHAVIORAL_RETENTION_JOB = "behavioral_retention"
SECURITY_EVENT_RETENTION_JOB = "security_event_retention"
DEVICE_CLEANUP_JOB = "device_cleanup"

_LEVEL_SEVERITY = {
    RiskLevel.NONE: Severity.LOW,
    RiskLevel.LOW: Severity.LOW,
    RiskLevel.MEDIUM: Severity.MEDIUM,
    RiskLevel.HIGH: Severity.HIGH,
    RiskLevel.CRITICAL: Severity.CRITICAL,
}


class BehaviorVerdict(BaseModel):
    """Anomaly analysis together with the decision taken on it"""
    result: AnomalyResult
    outcome: DecisionOutcome
    tracking_enabled: bool = True


class LoginVerdict(BaseModel):
    """Threat assessment together with the decision taken on it"""
    assessment: ThreatAssessment
    outcome: DecisionOutcome


class RiskEngine:
    """Adaptive authentication risk engine"""

    def __init__(
        self,
        settings: RiskGuardSettings,
        cache: ICacheBackend,
        store: IRecordStore,
        device_trust: IDeviceTrust,
        location: ILocationService,
        notifier: Optional[INotifier] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.cache = cache
        self.store = store
        self.device_trust = device_trust
        self.location = location
        self.notifier = notifier
        self._now = now
        self.logger = get_logger(__name__)

        self.rate_limiter = CacheRateLimiter(cache, settings.rate_limit, now=now)
        self.profiles = BehaviorProfileBuilder(store, cache, settings.behavioral, now=now)
        self.scorer = AnomalyScorer(self.profiles, settings.behavioral)
        self.tracking = BehavioralTracking(store, settings.behavioral.tracking_default_enabled, now=now)
        self.events = SecurityEventLog(store, cache, notifier, settings.threat, now=now)
        self.threats = ThreatAnalyzer(cache, self.events, device_trust, location, settings.threat)
        self.policy = DecisionPolicy(notifier, settings.behavioral.anomaly_threshold, settings.decision)

        self.jobs = JobRegistry()
        self.jobs.register(BEHAVIORAL_RETENTION_JOB, self.cleanup_old_data)
        self.jobs.register(SECURITY_EVENT_RETENTION_JOB, self._security_event_retention)
        self.jobs.register(DEVICE_CLEANUP_JOB, self._device_cleanup)

    # ------------------------------------------------------------------
    # Behavioral biometrics
    # ------------------------------------------------------------------

    async def record_behavior(self, subject_id: str, behavior_type: str, fields: Dict[str, Any],
                              session_id: Optional[str] = None, ip_address: Optional[str] = None,
                              user_agent: Optional[str] = None) -> bool:
        """
        Store one behavior sample and invalidate the cached profile.

        Returns:
            False when tracking is disabled for the subject and nothing was stored

        Raises:
            ValidationError: If the sample is malformed
            CollaboratorUnavailable: If the record store rejects the write
        """
        if not isinstance(fields, dict):
            raise ValidationError("behavior fields must be a mapping", context={"subject_id": subject_id})
        try:
            sample = BehaviorSample(
                subject_id=subject_id,
                behavior_type=behavior_type,
                fields=fields,
                timestamp=self._now(),
                session_id=session_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid behavior sample: {e}", context={"subject_id": subject_id})

        if not await self.tracking.is_enabled(subject_id):
            return False

        await self.store.insert(SAMPLES_COLLECTION, sample.model_dump())
        try:
            await self.profiles.invalidate(subject_id)
        except CollaboratorUnavailable as e:
            self.logger.warning("profile_invalidation_failed", subject_id=subject_id, error=str(e))
        return True

    async def assess_behavior(self, subject_id: str, current: Dict[str, Dict[str, Any]]) -> BehaviorVerdict:
        """
        Score current behavior, persist the analysis and apply the decision policy.

        Raises:
            ValidationError: If `current` is malformed
            CollaboratorUnavailable: If collaborators are down and `behavioral.fail_open` is off
        """
        validate_current_behavior(current)
        bind_request_context(subject_id=subject_id, operation="analyze_behavior")
        try:
            try:
                tracking = await self.tracking.settings_for(subject_id)
                if not tracking.enabled:
                    result = AnomalyResult(subject_id=subject_id, risk_score=0.0, anomalies=[], confidence=0.0)
                    outcome = DecisionOutcome(
                        decision=Decision.ALLOW,
                        normalized_score=0.0,
                        threshold=self.policy.alert_threshold,
                        source="behavior",
                    )
                    return BehaviorVerdict(result=result, outcome=outcome, tracking_enabled=False)
                result = await self.scorer.analyze(subject_id, current)
            except CollaboratorUnavailable as e:
                if not self.settings.behavioral.fail_open:
                    raise
                self.logger.warning("behavior_analysis_degraded", collaborator=e.collaborator, error=str(e))
                tracking = None
                result = insufficient_data_result(subject_id)

            await self._persist_analysis(subject_id, result, current)
            threshold = self._threshold_for(tracking)
            outcome = await self.policy.apply_behavior(subject_id, result, threshold)
            self.logger.info(
                "behavior_assessed",
                risk_score=result.risk_score,
                confidence=result.confidence,
                anomalies=result.anomalies,
                decision=outcome.decision.value,
            )
            return BehaviorVerdict(result=result, outcome=outcome)
        finally:
            clear_request_context()

    async def analyze_behavior(self, subject_id: str, current: Dict[str, Dict[str, Any]]) -> AnomalyResult:
        return (await self.assess_behavior(subject_id, current)).result

    async def _persist_analysis(self, subject_id: str, result: AnomalyResult,
                                current: Dict[str, Dict[str, Any]]) -> None:
        try:
            await self.store.insert(ANALYSIS_COLLECTION, {
                "subject_id": subject_id,
                "risk_score": result.risk_score,
                "confidence": result.confidence,
                "anomalies": result.anomalies,
                "behavior_data": current,
                "analysis_details": {
                    name: analysis.model_dump(mode="json") for name, analysis in result.details.items()
                },
                "timestamp": self._now(),
            })
        except CollaboratorUnavailable as e:
            self.logger.error("analysis_audit_write_failed", subject_id=subject_id, error=str(e))

    def _threshold_for(self, tracking: Optional[TrackingSettings]) -> float:
        if tracking is not None and tracking.alert_threshold is not None:
            return tracking.alert_threshold
        return self.settings.behavioral.anomaly_threshold

    async def enable_behavioral_tracking(self, subject_id: str, **settings: Any) -> TrackingSettings:
        return await self.tracking.enable(subject_id, **settings)

    async def disable_behavioral_tracking(self, subject_id: str) -> None:
        await self.tracking.disable(subject_id)

    async def get_behavior_profile(self, subject_id: str):
        return await self.profiles.get_profile(subject_id)

    # ------------------------------------------------------------------
    # Login threat analysis
    # ------------------------------------------------------------------

    async def assess_login(self, event: LoginEvent, enforce_rate_limit: bool = True) -> LoginVerdict:
        """
        Analyze a login attempt, record the findings and decide.

        Raises:
            RateLimitExceeded: If the source IP exhausted its login attempts
            CollaboratorUnavailable: If threat history cannot be read
        """
        bind_request_context(subject_id=event.subject_id, ip_address=event.ip_address, operation="analyze_login")
        try:
            if enforce_rate_limit:
                await self._enforce_login_rate_limit(event)

            assessment = await self.threats.analyze_login_attempt(event)
            threshold = await self._login_threshold(event)
            outcome = self.policy.login_outcome(assessment, threshold)
            await self._record_assessment(event, assessment, outcome)
            outcome = await self.policy.alert_login(event, assessment, outcome)

            self.logger.info(
                "login_assessed",
                risk_score=assessment.risk_score,
                risk_level=assessment.risk_level.value,
                threats=[t.value for t in assessment.threats],
                decision=outcome.decision.value,
            )
            return LoginVerdict(assessment=assessment, outcome=outcome)
        finally:
            clear_request_context()

    async def analyze_login_attempt(self, event: LoginEvent, enforce_rate_limit: bool = True) -> ThreatAssessment:
        return (await self.assess_login(event, enforce_rate_limit)).assessment

    async def _enforce_login_rate_limit(self, event: LoginEvent) -> None:
        key = self.rate_limiter.for_ip(event.ip_address, "login")
        try:
            await self.rate_limiter.check_or_fail(key)
        except RateLimitExceeded:
            await self.events.record(SecurityEvent(
                event_type=SecurityEventType.RATE_LIMITED.value,
                severity=Severity.MEDIUM,
                description=f"Login rate limit exceeded from {event.ip_address}",
                subject_id=event.subject_id,
                identity=event.identity,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                timestamp=self._now(),
            ))
            raise

    async def _login_threshold(self, event: LoginEvent) -> float:
        if not event.subject_id:
            return self.settings.behavioral.anomaly_threshold
        try:
            tracking = await self.tracking.settings_for(event.subject_id)
        except CollaboratorUnavailable as e:
            self.logger.warning("tracking_settings_unavailable", error=str(e))
            tracking = None
        return self._threshold_for(tracking)

    async def _record_assessment(self, event: LoginEvent, assessment: ThreatAssessment,
                                 outcome: DecisionOutcome) -> None:
        common = dict(
            subject_id=event.subject_id,
            identity=event.identity,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            location=event.location,
            timestamp=self._now(),
        )
        for kind in assessment.threats:
            await self.events.record(SecurityEvent(
                event_type=SecurityEventType.THREAT_DETECTED.value,
                severity=Severity.LOW,
                description=f"{kind.value} detected during login",
                metadata={"threat": kind.value, "weight": self.settings.threat.weights.for_kind(kind)},
                **common,
            ), alert=False)

        composite_type = (
            SecurityEventType.SUSPICIOUS_LOGIN
            if assessment.risk_level not in (RiskLevel.NONE, RiskLevel.LOW)
            else SecurityEventType.LOGIN_ASSESSMENT
        )
        # Alerting for the composite is left to the decision policy
        await self.events.record(SecurityEvent(
            event_type=composite_type.value,
            severity=_LEVEL_SEVERITY[assessment.risk_level],
            description=f"Login risk {assessment.risk_score} ({assessment.risk_level.value}), decision {outcome.decision.value}",
            metadata={
                "risk_score": assessment.risk_score,
                "risk_level": assessment.risk_level.value,
                "threats": [t.value for t in assessment.threats],
                "recommendations": assessment.recommendations,
                "decision": outcome.decision.value,
                "alert_required": outcome.normalized_score > outcome.threshold,
            },
            **common,
        ), alert=False)

    async def record_login_outcome(self, event: LoginEvent, success: bool) -> int:
        """
        Record the result of a credential check.

        Failures increment the brute-force counter for (identity, IP), which
        expires after the lockout duration; success clears it.

        Returns:
            The failed-attempt count for (identity, IP) after this outcome
        """
        key = brute_force_key(event.identity, event.ip_address)
        common = dict(
            subject_id=event.subject_id,
            identity=event.identity,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            location=event.location,
            timestamp=event.timestamp,
        )

        if success:
            await self.events.record(SecurityEvent(
                event_type=SecurityEventType.SUCCESSFUL_LOGIN.value,
                severity=Severity.LOW,
                description="Successful login",
                **common,
            ))
            await self.cache.delete(key)
            return 0

        failures = await self.cache.increment(key, 1, ttl=self.settings.threat.lockout_duration)
        await self.events.record(SecurityEvent(
            event_type=SecurityEventType.FAILED_LOGIN.value,
            severity=Severity.MEDIUM,
            description="Failed login attempt",
            metadata={"failed_attempts": failures},
            **common,
        ))

        if failures == self.settings.threat.suspicious_threshold:
            await self.events.record(SecurityEvent(
                event_type=SecurityEventType.SUSPICIOUS_LOGIN.value,
                severity=Severity.MEDIUM,
                description=f"{failures} failed login attempts for {event.identity}",
                metadata={"failed_attempts": failures},
                **common,
            ))
        elif failures == self.settings.threat.max_failed_attempts:
            await self.events.record(SecurityEvent(
                event_type=SecurityEventType.THREAT_DETECTED.value,
                severity=Severity.HIGH,
                description=(
                    f"Account locked for {event.identity} from {event.ip_address} "
                    f"after {failures} failed attempts"
                ),
                metadata={"threat": "brute_force", "lockout_seconds": self.settings.threat.lockout_duration},
                **common,
            ))
        return failures

    async def is_locked_out(self, identity: str, ip_address: str) -> bool:
        attempts = await self.cache.get(brute_force_key(identity, ip_address))
        return int(attempts or 0) >= self.settings.threat.max_failed_attempts

    async def record_password_change(self, subject_id: str, ip_address: Optional[str] = None,
                                     user_agent: Optional[str] = None) -> None:
        await self.events.record(SecurityEvent(
            event_type=SecurityEventType.PASSWORD_CHANGE.value,
            severity=Severity.LOW,
            description="Password changed",
            subject_id=subject_id,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=self._now(),
        ))

    async def record_security_event(self, event_type: str, severity: Severity = Severity.MEDIUM,
                                    description: str = "", subject_id: Optional[str] = None,
                                    ip_address: Optional[str] = None, user_agent: Optional[str] = None,
                                    metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        if not event_type:
            raise ValidationError("event_type is required")
        return await self.events.record(SecurityEvent(
            event_type=event_type,
            severity=severity,
            description=description,
            subject_id=subject_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata or {},
            timestamp=self._now(),
        ))

    # ------------------------------------------------------------------
    # Reporting and retention
    # ------------------------------------------------------------------

    async def behavioral_analytics(self, subject_id: Optional[str] = None) -> Dict[str, Any]:
        equals = {"subject_id": subject_id} if subject_id else {}
        analyses = await self.store.query(RecordFilter(collection=ANALYSIS_COLLECTION, equals=equals))
        threshold = self.settings.behavioral.anomaly_threshold

        anomaly_counts: Counter = Counter()
        for row in analyses:
            anomaly_counts.update(row.get("anomalies") or [])

        return {
            "total_subjects_tracked": await self.tracking.tracked_subject_count(),
            "total_behavior_records": await self.store.count(
                RecordFilter(collection=SAMPLES_COLLECTION, equals=equals)
            ),
            "high_risk_detections": sum(1 for row in analyses if row["risk_score"] > threshold),
            "average_risk_score": (
                sum(row["risk_score"] for row in analyses) / len(analyses) if analyses else None
            ),
            "most_common_anomalies": [
                {"anomaly": name, "count": count} for name, count in anomaly_counts.most_common(10)
            ],
        }

    async def security_dashboard(self) -> Dict[str, Any]:
        return await self.events.dashboard()

    async def cleanup_old_data(self) -> Dict[str, int]:
        """Delete behavior samples and analyses older than the retention period"""
        cutoff = self._now() - timedelta(days=self.settings.behavioral.retention_days)
        return {
            "behavioral_data_deleted": await self.store.delete(
                RecordFilter(collection=SAMPLES_COLLECTION, until=cutoff)
            ),
            "analysis_data_deleted": await self.store.delete(
                RecordFilter(collection=ANALYSIS_COLLECTION, until=cutoff)
            ),
        }

    async def _security_event_retention(self) -> Dict[str, int]:
        deleted = await self.events.cleanup(self.settings.threat.event_retention_days)
        return {"security_events_deleted": deleted}

    async def _device_cleanup(self) -> Dict[str, int]:
        deleted = await self.device_trust.cleanup_old_devices(self.settings.threat.device_cleanup_days)
        return {"devices_deleted": deleted}

    async def run_job(self, name: str):
        return await self.jobs.run(name)


def create_risk_engine(
    settings: RiskGuardSettings,
    cache: Optional[ICacheBackend] = None,
    store: Optional[IRecordStore] = None,
    device_trust: Optional[IDeviceTrust] = None,
    location: Optional[ILocationService] = None,
    notifier: Optional[INotifier] = None,
    now: Callable[[], datetime] = utc_now,
) -> RiskEngine:
    """
    Build a RiskEngine from settings, filling in default collaborators.

    The cache backend is chosen through the backend registry. With the redis
    backend the record store also lives in Redis; otherwise it is in memory.
    """
    configure_logging(settings.logging)

    if cache is None:
        cache = create_cache_backend(settings.cache)
    if store is None:
        if settings.cache.backend == CacheBackendType.REDIS:
            from riskguard.infrastructure.persistence.redis_store import RedisRecordStore
            from riskguard.infrastructure.redis_client import create_redis_client
            store = RedisRecordStore(create_redis_client(settings.cache), key_prefix=settings.cache.key_prefix)
        else:
            store = InMemoryRecordStore()

    return RiskEngine(
        settings=settings,
        cache=cache,
        store=store,
        device_trust=device_trust or InMemoryDeviceRegistry(),
        location=location or HaversineLocationService(),
        notifier=notifier if notifier is not None else create_notifier(settings.alerting),
        now=now,
    )
