import sys
import time
from pathlib import Path

import pytest

# Ensure the src directory is on the Python path for imports
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from mock_proxy_server import MockProxyServer  # noqa: E402


@pytest.fixture
def proxy_server():
    server = MockProxyServer()
    server.start()
    yield server
    server.stop()


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def poll_until(client, predicate, timeout=2.0):
    """Call ``client.poll_once`` until ``predicate()`` holds or time runs out."""
    def step():
        client.poll_once()
        return predicate()
    return wait_until(step, timeout)


@pytest.fixture
def wait():
    return wait_until


@pytest.fixture
def poll():
    return poll_until
