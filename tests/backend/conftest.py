"""Shared fixtures. The database path must be set before app.config is imported."""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="russound-bridge-test-")
os.environ.setdefault("RUSSOUND_DB_PATH", os.path.join(_TMP_DIR, "test.db"))

import pytest  # noqa: E402

from app.services.zone_state import ZoneStateStore  # noqa: E402


@pytest.fixture
def store():
    return ZoneStateStore()


class RecordingClient:
    """Stand-in for GatewayClient that records calls instead of writing."""

    def __init__(self, host, port, **kwargs):
        from app.protocol.commands import DEFAULT_COMMANDS
        from app.protocol.gateway_client import GatewayTarget

        self.target = GatewayTarget(host, port)
        self.kwargs = kwargs
        self.commands = kwargs.get("commands", DEFAULT_COMMANDS)
        self.calls = []
        self.closed = False
        self.connects = 0

    def __getattr__(self, name):
        if name.startswith(("set_", "send_", "query_")):
            return lambda *args: self.calls.append((name, *args))
        raise AttributeError(name)

    @property
    def stats(self):
        return {"host": self.target.host, "port": self.target.port, "state": "connected",
                "queue_depth": 0, "reconnect_attempt": 0, "reconnect_pending": False}

    async def connect(self):
        self.connects += 1

    def disconnect(self):
        pass

    async def aclose(self):
        self.closed = True


@pytest.fixture
def recording_client_factory():
    return RecordingClient
