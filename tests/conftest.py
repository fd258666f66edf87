from typing import Any, Optional
from unittest.mock import patch

import pytest

from drecipe.cluster import InMemoryCluster
from drecipe.config import EngineConfig
from drecipe.context import RunContext
from drecipe.retry import Retryable


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def configmap(
    name: str,
    namespace: str = "default",
    labels: Optional[dict[str, str]] = None,
    data: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """Build a ConfigMap object."""
    obj: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
    }
    if labels:
        obj["metadata"]["labels"] = dict(labels)
    if data is not None:
        obj["data"] = dict(data)
    return obj


def recipe_obj(
    name: str,
    tasks: list[dict[str, Any]],
    namespace: str = "default",
    **spec: Any,
) -> dict[str, Any]:
    """Build a Recipe object."""
    return {
        "apiVersion": "dope.mayadata.io/v1",
        "kind": "Recipe",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"tasks": tasks, **spec},
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cluster():
    return InMemoryCluster()


@pytest.fixture
def retry(clock):
    return Retryable(timeout=3, interval=1, sleep=clock.sleep, clock=clock)


@pytest.fixture
def ctx(cluster, retry):
    return RunContext(cluster=cluster, retry=retry)


@pytest.fixture
def test_config():
    return EngineConfig(timeout_seconds=3, interval_seconds=0, log_level="WARNING")


@pytest.fixture(autouse=True)
def mock_load_config(request, test_config):
    # Don't patch for config tests
    if "test_config" in request.module.__name__ or "test_cli_config" in request.module.__name__:
        yield
        return

    with patch("drecipe.config.load_config", return_value=test_config):
        yield
