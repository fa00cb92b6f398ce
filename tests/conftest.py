import pytest

from deckhand.observers.dispatcher import EventBus
from deckhand.release.storage import MemoryStorage
from deckhand.utils.context import DeployContext

from fakes import Capture, FakeKubeClient, FakeTracker


@pytest.fixture
def kube():
    return FakeKubeClient()


@pytest.fixture
def tracker(kube):
    return FakeTracker(kube)


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def ctx(capture):
    return DeployContext(env="test", kube_context="kind-test", bus=EventBus([capture]))


@pytest.fixture
def storage():
    return MemoryStorage()
