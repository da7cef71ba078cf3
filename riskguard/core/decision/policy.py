"""
Decision and alert policy

Maps an AnomalyResult (risk in [0, 1]) or a ThreatAssessment (score in
[0, 100]) onto allow / challenge / block, and alerts the subject and
administrators when the normalized risk exceeds the alert threshold.

Alert delivery is best effort: a failed alert is logged and reported on the
outcome, never raised.
"""

import logging
from typing import Optional, Union

from riskguard.config.settings import DecisionSettings
from riskguard.models.behavioral import AnomalyResult
from riskguard.models.interfaces import INotifier
from riskguard.models.threat import Decision, DecisionOutcome, LoginEvent, ThreatAssessment

SUBJECT_ALERT_TITLE = "Unusual Activity Detected"
SUBJECT_ALERT_MESSAGE = (
    "We detected unusual behavior patterns on your account. "
    "If this wasn't you, please secure your account immediately."
)
BEHAVIOR_ADMIN_TITLE = "Behavioral Anomaly Alert"
LOGIN_ADMIN_TITLE = "Suspicious Login Alert"


def normalize(analysis: Union[AnomalyResult, ThreatAssessment]) -> float:
    if isinstance(analysis, ThreatAssessment):
        return max(0.0, min(1.0, analysis.risk_score / 100.0))
    return max(0.0, min(1.0, analysis.risk_score))


class DecisionPolicy:
    """Threshold policy shared by behavior and login analyses"""

    def __init__(self, notifier: Optional[INotifier], alert_threshold: float,
                 settings: Optional[DecisionSettings] = None):
        self.notifier = notifier
        self.alert_threshold = alert_threshold
        self.settings = settings or DecisionSettings()
        self.logger = logging.getLogger(__name__)

    def decide(self, score: float, threshold: Optional[float] = None) -> Decision:
        """
        Block strictly above the alert threshold, challenge from the challenge threshold.

        The neutral insufficient-data result (0.5, confidence 0) falls in the
        challenge band with the default thresholds, so a subject without
        `min_samples` of history is challenged until a profile exists.
        """
        threshold = self.alert_threshold if threshold is None else threshold
        if score > threshold:
            return Decision.BLOCK
        if score >= min(self.settings.challenge_threshold, threshold):
            return Decision.CHALLENGE
        return Decision.ALLOW

    async def apply_behavior(self, subject_id: str, result: AnomalyResult,
                             threshold: Optional[float] = None) -> DecisionOutcome:
        threshold = self.alert_threshold if threshold is None else threshold
        score = normalize(result)
        outcome = DecisionOutcome(
            decision=self.decide(score, threshold),
            normalized_score=score,
            threshold=threshold,
            source="behavior",
        )
        if score > threshold:
            outcome = await self._alert(
                outcome,
                subject_id,
                admin_title=BEHAVIOR_ADMIN_TITLE,
                admin_message=f"Unusual behavior detected for user {subject_id} (Risk Score: {round(score * 100)}%)",
                data={"subject_id": subject_id, "risk_score": result.risk_score, "anomalies": result.anomalies},
            )
        return outcome

    async def apply_login(self, event: LoginEvent, assessment: ThreatAssessment,
                          threshold: Optional[float] = None) -> DecisionOutcome:
        outcome = self.login_outcome(assessment, threshold)
        return await self.alert_login(event, assessment, outcome)

    def login_outcome(self, assessment: ThreatAssessment, threshold: Optional[float] = None) -> DecisionOutcome:
        """Decision for a login assessment, without dispatching any alert"""
        threshold = self.alert_threshold if threshold is None else threshold
        score = normalize(assessment)
        return DecisionOutcome(
            decision=self.decide(score, threshold),
            normalized_score=score,
            threshold=threshold,
            source="login",
        )

    async def alert_login(self, event: LoginEvent, assessment: ThreatAssessment,
                          outcome: DecisionOutcome) -> DecisionOutcome:
        """Alert the subject and administrators when the outcome is above its threshold"""
        if outcome.normalized_score > outcome.threshold:
            outcome = await self._alert(
                outcome,
                event.subject_id,
                admin_title=LOGIN_ADMIN_TITLE,
                admin_message=(
                    f"High-risk login for {event.identity} from {event.ip_address} "
                    f"(Risk Score: {assessment.risk_score}, level {assessment.risk_level.value})"
                ),
                data={
                    "subject_id": event.subject_id,
                    "ip_address": event.ip_address,
                    "risk_score": assessment.risk_score,
                    "threats": [t.value for t in assessment.threats],
                },
            )
        return outcome

    async def _alert(self, outcome: DecisionOutcome, subject_id: Optional[str],
                     admin_title: str, admin_message: str, data: dict) -> DecisionOutcome:
        if self.notifier is None:
            return outcome

        errors = []
        if subject_id:
            try:
                await self.notifier.send_to_subject(
                    subject_id, SUBJECT_ALERT_TITLE, SUBJECT_ALERT_MESSAGE, level="warning",
                    data={**data, "action_required": True},
                )
            except Exception as e:
                self.logger.warning(f"Subject alert failed for {subject_id}: {e}")
                errors.append(str(e))

        try:
            await self.notifier.send_to_admins(admin_title, admin_message, level="error", data=data)
        except Exception as e:
            self.logger.warning(f"Administrator alert failed: {e}")
            errors.append(str(e))

        return outcome.model_copy(update={
            "alerted": len(errors) == 0,
            "alert_error": "; ".join(errors) or None,
        })
