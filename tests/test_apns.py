"""Tests for the APNs transport: provider tokens and channel requests."""
import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from disaster_monitor.services.apns import (
    PROVIDER_TOKEN_TTL,
    DeliveryChannel,
    Environment,
    Notification,
    RejectionReason,
    SigningCredential,
)


@pytest.fixture
def signing_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def credential(signing_key):
    pem = signing_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return SigningCredential(pem, key_id="KEY123", team_id="TEAM456")


def _channel(environment, credential, handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return DeliveryChannel(environment, credential, client=client)


def test_provider_token_is_signed_es256(credential, signing_key) -> None:
    token = credential.bearer_token()
    header = jwt.get_unverified_header(token)
    assert header["alg"] == "ES256"
    assert header["kid"] == "KEY123"
    claims = jwt.decode(token, signing_key.public_key(), algorithms=["ES256"])
    assert claims["iss"] == "TEAM456"


def test_provider_token_is_cached_until_ttl(signing_key) -> None:
    pem = signing_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    now = [1_700_000_000.0]
    credential = SigningCredential(pem, "KEY123", "TEAM456", clock=lambda: now[0])
    first = credential.bearer_token()
    now[0] += PROVIDER_TOKEN_TTL - 1
    assert credential.bearer_token() == first
    now[0] += 1
    refreshed = credential.bearer_token()
    assert refreshed != first
    assert jwt.decode(refreshed, options={"verify_signature": False})["iat"] == int(now[0])


def test_from_file_missing_key_raises(tmp_path) -> None:
    with pytest.raises(OSError):
        SigningCredential.from_file(tmp_path / "missing.p8", "KEY123", "TEAM456")


def test_accepted_notification(credential) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, headers={"apns-id": "abc-1"})

    channel = _channel(Environment.SANDBOX, credential, handler)
    notification = Notification(payload={"aps": {"event": "update"}}, topic="org.example.push-type.liveactivity")
    result = channel.send(notification, "devtoken")

    assert result.accepted
    assert result.apns_id == "abc-1"
    assert result.reason is None
    assert seen["url"] == "https://api.sandbox.push.apple.com/3/device/devtoken"
    assert seen["body"] == {"aps": {"event": "update"}}
    assert seen["headers"]["apns-push-type"] == "liveactivity"
    assert seen["headers"]["apns-topic"] == "org.example.push-type.liveactivity"
    assert seen["headers"]["apns-priority"] == "10"
    assert seen["headers"]["apns-expiration"] == "0"
    assert seen["headers"]["authorization"].startswith("bearer ")


def test_production_channel_uses_production_host(credential) -> None:
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return httpx.Response(200)

    _channel(Environment.PRODUCTION, credential, handler).send(
        Notification(payload={}, topic="t"), "tok"
    )
    assert urls == ["https://api.push.apple.com/3/device/tok"]


def test_rejection_reason_is_parsed(credential) -> None:
    def handler(request):
        return httpx.Response(400, json={"reason": "BadDeviceToken"})

    result = _channel(Environment.PRODUCTION, credential, handler).send(
        Notification(payload={}, topic="t"), "tok"
    )
    assert not result.accepted
    assert result.status_code == 400
    assert result.reason is RejectionReason.BAD_DEVICE_TOKEN
    assert result.detail == {"reason": "BadDeviceToken"}


@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"reason": "SomethingNew"}),
    httpx.Response(503, text="upstream unavailable"),
    httpx.Response(500, json=["not", "an", "object"]),
])
def test_unrecognised_rejections_are_unknown(credential, response) -> None:
    result = _channel(Environment.SANDBOX, credential, lambda request: response).send(
        Notification(payload={}, topic="t"), "tok"
    )
    assert result.reason is RejectionReason.UNKNOWN


def test_transport_error_propagates(credential) -> None:
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    channel = _channel(Environment.SANDBOX, credential, handler)
    with pytest.raises(httpx.ConnectError):
        channel.send(Notification(payload={}, topic="t"), "tok")
