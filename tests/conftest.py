"""Shared pytest fixtures.

The application runs against a throwaway SQLite file and a recording
dispatcher so route tests never touch APNs. Dispatcher tests use fake
channels and an executor that runs submitted work inline.
"""
from __future__ import annotations

from concurrent.futures import Future

import pytest

from disaster_monitor import create_app, db
from disaster_monitor.services.apns import DeliveryResult, Environment


class InlineExecutor:
    """Executor stand-in that runs each task as it is submitted."""

    def __init__(self) -> None:
        self.submitted = 0
        self.shut_down = False

    def submit(self, fn, *args, **kwargs) -> Future:
        if self.shut_down:
            raise RuntimeError("cannot schedule new futures after shutdown")
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self.shut_down = True


class FakeChannel:
    """Delivery channel returning a canned result or raising an error."""

    def __init__(self, environment: Environment, status_code: int = 200,
                 reason=None, error: Exception | None = None) -> None:
        self.environment = environment
        self.status_code = status_code
        self.reason = reason
        self.error = error
        self.sent = []
        self.closed = False

    def send(self, notification, device_token):
        self.sent.append((notification, device_token))
        if self.error is not None:
            raise self.error
        return DeliveryResult(
            environment=self.environment,
            status_code=self.status_code,
            reason=self.reason,
            apns_id="apns-123" if self.status_code == 200 else None,
            detail={"reason": self.reason.value} if self.reason else {},
        )

    def close(self) -> None:
        self.closed = True


class RecordingDispatcher:
    """Collects dispatch calls made by the report routes."""

    def __init__(self) -> None:
        self.calls = []

    def dispatch(self, token, report) -> None:
        self.calls.append((token, report))

    def close(self) -> None:
        pass


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def legacy_path(tmp_path):
    return tmp_path / "db.json"


@pytest.fixture
def app(tmp_path, legacy_path, dispatcher):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "LEGACY_DB_PATH": str(legacy_path),
        "PREPARE_STORE_ON_START": False,
        "LIVE_ACTIVITY_DISPATCHER": dispatcher,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
