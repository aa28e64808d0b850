"""Live Activity updates for disaster reports.

When a report with a bound live activity token changes, the client's
Live Activity is refreshed through APNs. The app does not report
reliably whether a token was issued by the sandbox or the production
environment, so every update is sent to both. The environment that
did not issue the token answers ``BadDeviceToken``. That answer is the
normal steady state for one of the two sends and is only logged at
debug level. Every other rejection, and every transport error, is
logged as an error.

Dispatch is fire-and-forget. ``LiveActivityDispatcher.dispatch``
submits one task per channel to a thread pool and returns at once.
The tasks are independent, are never retried and never raise to the
caller. The next report update re-sends the full current state.
"""
from __future__ import annotations

import enum
import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Mapping, Optional, Sequence

import httpx

from .apns import (
    DeliveryChannel,
    DeliveryResult,
    Environment,
    Notification,
    RejectionReason,
    SigningCredential,
)
from .severity import SeverityTier, build_severity_table, classify_severity

logger = logging.getLogger(__name__)

UNKNOWN_LEVEL = "未知"

# Token issued by the other APNs environment.
CROSS_ENVIRONMENT_REASONS = frozenset({RejectionReason.BAD_DEVICE_TOKEN})


class DeliveryOutcome(enum.Enum):
    DELIVERED = "delivered"
    CROSS_ENVIRONMENT = "cross_environment"
    FAILED = "failed"


def live_activity_topic(bundle_id: str) -> str:
    return f"{bundle_id}.push-type.liveactivity"


def build_live_activity_payload(
    report: Mapping[str, Any],
    now: Optional[float] = None,
    severity_table=None,
) -> dict[str, Any]:
    """Build the APNs body for a Live Activity ``update`` event.

    The ``content-state`` keys are decoded by the iOS widget and must
    not be renamed.
    """
    timestamp = int(time.time() if now is None else now)
    level = report.get("level")
    display_level = level if level else UNKNOWN_LEVEL
    tier: SeverityTier = classify_severity(level, severity_table)
    return {
        "aps": {
            "timestamp": timestamp,
            "event": "update",
            "content-state": {
                "currentLevel": display_level,
                "levelColorName": tier.value,
                "updateTimestamp": timestamp,
            },
            "alert": {
                "title": f"灾害更新：{report.get('title')}",
                "body": f"当前等级已变更为：{display_level}",
            },
            "sound": "default",
        }
    }


def classify_outcome(result: DeliveryResult) -> DeliveryOutcome:
    """Sort a channel result into delivered, cross-environment or failed."""
    if result.error is None and result.accepted:
        return DeliveryOutcome.DELIVERED
    if result.error is None and result.reason in CROSS_ENVIRONMENT_REASONS:
        return DeliveryOutcome.CROSS_ENVIRONMENT
    return DeliveryOutcome.FAILED


def _token_prefix(token: str) -> str:
    return token[:8]


class LiveActivityDispatcher:
    """Fans a Live Activity update out to every delivery channel.

    Parameters
    ----------
    channels: Sequence[DeliveryChannel]
        The sandbox and production channels. Each one is attempted on
        every dispatch.
    topic: str
        APNs topic, ``<bundle id>.push-type.liveactivity``.
    executor: Executor
        Pool the sends run on. Owned by the dispatcher once passed in.
    severity_table: optional
        Classification table passed to ``classify_severity``.
    """

    def __init__(
        self,
        channels: Sequence[DeliveryChannel],
        topic: str,
        executor: Executor,
        severity_table=None,
    ) -> None:
        self.channels = tuple(channels)
        self.topic = topic
        self.severity_table = severity_table
        self._executor = executor

    def dispatch(self, token: str, report: Mapping[str, Any]) -> None:
        """Queue an update of ``report`` for the Live Activity at ``token``."""
        if not token:
            logger.warning("Live activity update for report %s dropped: empty token", report.get("id"))
            return
        try:
            notification = Notification(
                payload=build_live_activity_payload(report, severity_table=self.severity_table),
                topic=self.topic,
            )
        except Exception:
            logger.exception("Could not build live activity payload for report %s", report.get("id"))
            return
        for channel in self.channels:
            try:
                self._executor.submit(self._deliver, channel, notification, token, report.get("id"))
            except RuntimeError:
                # executor already shut down (interpreter exit)
                logger.error("Live activity dispatch to %s skipped: executor is closed",
                             channel.environment.value)

    def _deliver(self, channel: DeliveryChannel, notification: Notification,
                 token: str, report_id: Any) -> DeliveryOutcome:
        env = channel.environment.value
        try:
            result = channel.send(notification, token)
        except Exception as exc:
            # transport errors, plus signing key or encoding problems
            result = DeliveryResult(environment=channel.environment, error=exc)

        outcome = classify_outcome(result)
        if outcome is DeliveryOutcome.DELIVERED:
            logger.info("[%s] Live activity update delivered for report %s apns_id=%s",
                        env, report_id, result.apns_id)
        elif outcome is DeliveryOutcome.CROSS_ENVIRONMENT:
            logger.debug("[%s] Token %s... belongs to the other environment (report %s)",
                         env, _token_prefix(token), report_id)
        elif result.error is not None:
            logger.error("[%s] Live activity send failed for report %s token=%s...: %r",
                         env, report_id, _token_prefix(token), result.error,
                         exc_info=None if isinstance(result.error, httpx.HTTPError) else result.error)
        else:
            logger.error("[%s] Live activity rejected for report %s token=%s... status=%s reason=%s detail=%s",
                         env, report_id, _token_prefix(token), result.status_code,
                         result.reason.value if result.reason else None, result.detail)
        return outcome

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        for channel in self.channels:
            channel.close()


class NullLiveActivityDispatcher:
    """Dispatcher used when APNs is not configured; drops every update."""

    def dispatch(self, token: str, report: Mapping[str, Any]) -> None:
        logger.debug("Live activity disabled; dropping update for report %s token_prefix=%s",
                     report.get("id"), _token_prefix(token or ""))

    def close(self) -> None:
        pass


def create_dispatcher(config: Mapping[str, Any]):
    """Build the process-wide dispatcher from Flask config.

    Returns a ``NullLiveActivityDispatcher`` when delivery is disabled
    or the signing key cannot be loaded; a bad key must not stop the
    service from starting.
    """
    if not config.get("LIVE_ACTIVITY_ENABLED"):
        logger.info("Live activity delivery disabled")
        return NullLiveActivityDispatcher()
    try:
        credential = SigningCredential.from_file(
            config["APNS_KEY_PATH"], config["APNS_KEY_ID"], config["APNS_TEAM_ID"]
        )
    except (OSError, TypeError) as exc:
        logger.error("Live activity delivery disabled: cannot read APNs key %s: %s",
                     config.get("APNS_KEY_PATH"), exc)
        return NullLiveActivityDispatcher()

    timeout = float(config.get("APNS_REQUEST_TIMEOUT", 10.0))
    channels = [
        DeliveryChannel(Environment.SANDBOX, credential, timeout=timeout),
        DeliveryChannel(Environment.PRODUCTION, credential, timeout=timeout),
    ]
    executor = ThreadPoolExecutor(
        max_workers=int(config.get("APNS_MAX_WORKERS", 4)),
        thread_name_prefix="live-activity",
    )
    logger.info("Live activity delivery enabled for %s (sandbox + production)", config["APNS_BUNDLE_ID"])
    return LiveActivityDispatcher(
        channels,
        topic=live_activity_topic(config["APNS_BUNDLE_ID"]),
        executor=executor,
        severity_table=build_severity_table(config.get("SEVERITY_TABLE")),
    )
