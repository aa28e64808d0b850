"""Apple Push Notification service transport.

A ``DeliveryChannel`` posts one notification to one APNs environment
over HTTP/2 and reports what happened as a ``DeliveryResult``. It does
not decide whether a rejection matters; that is left to the live
activity dispatcher. Both environments authenticate with the same
token-based ``SigningCredential`` (a ``.p8`` key), so one credential is
shared by the sandbox and production channels.

Rejection reasons are parsed into the closed ``RejectionReason`` enum.
Reason strings APNs may add in the future map to
``RejectionReason.UNKNOWN``.
"""
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import httpx
import jwt

# APNs rejects provider tokens older than an hour and throttles
# refreshes more frequent than every 20 minutes.
PROVIDER_TOKEN_TTL = 50 * 60


class Environment(enum.Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @property
    def base_url(self) -> str:
        if self is Environment.SANDBOX:
            return "https://api.sandbox.push.apple.com"
        return "https://api.push.apple.com"


class RejectionReason(enum.Enum):
    """Reason strings returned by APNs in a rejected response body."""
    BAD_COLLAPSE_ID = "BadCollapseId"
    BAD_DEVICE_TOKEN = "BadDeviceToken"
    BAD_EXPIRATION_DATE = "BadExpirationDate"
    BAD_MESSAGE_ID = "BadMessageId"
    BAD_PRIORITY = "BadPriority"
    BAD_TOPIC = "BadTopic"
    DEVICE_TOKEN_NOT_FOR_TOPIC = "DeviceTokenNotForTopic"
    DUPLICATE_HEADERS = "DuplicateHeaders"
    IDLE_TIMEOUT = "IdleTimeout"
    INVALID_PUSH_TYPE = "InvalidPushType"
    MISSING_DEVICE_TOKEN = "MissingDeviceToken"
    MISSING_TOPIC = "MissingTopic"
    PAYLOAD_EMPTY = "PayloadEmpty"
    TOPIC_DISALLOWED = "TopicDisallowed"
    BAD_CERTIFICATE = "BadCertificate"
    BAD_CERTIFICATE_ENVIRONMENT = "BadCertificateEnvironment"
    EXPIRED_PROVIDER_TOKEN = "ExpiredProviderToken"
    FORBIDDEN = "Forbidden"
    INVALID_PROVIDER_TOKEN = "InvalidProviderToken"
    MISSING_PROVIDER_TOKEN = "MissingProviderToken"
    UNRELATED_KEY_ID_IN_TOKEN = "UnrelatedKeyIdInToken"
    BAD_ENVIRONMENT_KEY_IN_TOKEN = "BadEnvironmentKeyInToken"
    BAD_PATH = "BadPath"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    EXPIRED_TOKEN = "ExpiredToken"
    UNREGISTERED = "Unregistered"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    TOO_MANY_PROVIDER_TOKEN_UPDATES = "TooManyProviderTokenUpdates"
    TOO_MANY_REQUESTS = "TooManyRequests"
    INTERNAL_SERVER_ERROR = "InternalServerError"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    SHUTDOWN = "Shutdown"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "RejectionReason":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Notification:
    """A push request: JSON payload plus the APNs routing headers."""
    payload: dict[str, Any]
    topic: str
    push_type: str = "liveactivity"
    priority: int = 10
    expiration: int = 0

    def headers(self) -> dict[str, str]:
        return {
            "apns-push-type": self.push_type,
            "apns-topic": self.topic,
            "apns-priority": str(self.priority),
            "apns-expiration": str(self.expiration),
        }


@dataclass
class DeliveryResult:
    """Raw outcome of one send on one channel.

    Exactly one of ``status_code`` or ``error`` is set: a response was
    received, or the request failed before one arrived.
    """
    environment: Environment
    status_code: Optional[int] = None
    reason: Optional[RejectionReason] = None
    apns_id: Optional[str] = None
    error: Optional[BaseException] = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status_code == 200


class SigningCredential:
    """ES256 provider token issuer for token-based APNs authentication.

    The signed token is cached and reissued every ``PROVIDER_TOKEN_TTL``
    seconds. Access is serialised because the sandbox and production
    channels use the credential from separate worker threads.
    """

    def __init__(self, private_key: str, key_id: str, team_id: str, clock=time.time) -> None:
        self.key_id = key_id
        self.team_id = team_id
        self._private_key = private_key
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._issued_at = 0.0

    @classmethod
    def from_file(cls, path: str | Path, key_id: str, team_id: str) -> "SigningCredential":
        return cls(Path(path).read_text(encoding="utf-8"), key_id, team_id)

    def bearer_token(self) -> str:
        with self._lock:
            now = self._clock()
            if self._token is None or now - self._issued_at >= PROVIDER_TOKEN_TTL:
                self._token = jwt.encode(
                    {"iss": self.team_id, "iat": int(now)},
                    self._private_key,
                    algorithm="ES256",
                    headers={"kid": self.key_id},
                )
                self._issued_at = now
            return self._token


class DeliveryChannel:
    """One APNs environment with its own HTTP/2 connection."""

    def __init__(
        self,
        environment: Environment,
        credential: SigningCredential,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.environment = environment
        self.credential = credential
        self._client = client or httpx.Client(http2=True, timeout=timeout)

    def send(self, notification: Notification, device_token: str) -> DeliveryResult:
        """POST ``notification`` to ``device_token``.

        Returns a result for any HTTP response. Transport failures are
        raised as ``httpx.HTTPError`` for the caller to classify.
        """
        headers = notification.headers()
        headers["authorization"] = f"bearer {self.credential.bearer_token()}"
        response = self._client.post(
            f"{self.environment.base_url}/3/device/{device_token}",
            json=notification.payload,
            headers=headers,
        )
        result = DeliveryResult(
            environment=self.environment,
            status_code=response.status_code,
            apns_id=response.headers.get("apns-id"),
        )
        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {"body": response.text}
            if not isinstance(body, dict):
                body = {"body": body}
            result.detail = body
            result.reason = RejectionReason.parse(body.get("reason"))
        return result

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:
        return f"<DeliveryChannel {self.environment.value}>"
