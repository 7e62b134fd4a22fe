# tests/conftest.py
import pytest

from garage_bridge.core.connection_state import ConnectionState
from garage_bridge.core.mqtt_client import BrokerConnection

from fakes import FakeCertificateManager, FakeClientFactory, make_config


@pytest.fixture
def bridge_config():
    return make_config()


@pytest.fixture
def state():
    return ConnectionState()


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.fixture
def certificates():
    return FakeCertificateManager()


@pytest.fixture
def connection(bridge_config, state, certificates, factory):
    return BrokerConnection(bridge_config, state, certificates, factory)
