"""
使用真实paho客户端对本地回环TLS应答器的连接测试
"""

import socket
import time

import pytest

from garage_bridge.core.connection_state import ConnectionState, ConnectionStatus
from garage_bridge.core.errors import ConnectError, ConnectErrorKind, PublishConnectionLost
from garage_bridge.core.mqtt_client import BrokerConnection
from garage_bridge.services.certificate_manager import CertificateManager

from fakes import connect_now, make_config
from loopback_broker import CertificateAuthority, LoopbackBroker, write_key_pair


@pytest.fixture
def pki(tmp_path):
    ca = CertificateAuthority("garage-test-ca")
    other_ca = CertificateAuthority("unrelated-ca")
    server_cert, server_key = write_key_pair(tmp_path, "server", *ca.issue("localhost", server=True))
    client_cert, client_key = write_key_pair(tmp_path, "client", *ca.issue("garage-mqtt-bridge", server=False))
    return {
        "ca": ca.write(tmp_path / "ca.crt"),
        "other_ca": other_ca.write(tmp_path / "other-ca.crt"),
        "server_cert": server_cert,
        "server_key": server_key,
        "client_cert": client_cert,
        "client_key": client_key,
    }


@pytest.fixture
def start_broker(pki):
    brokers = []

    def start(mode="ack", trusted_ca=None):
        broker = LoopbackBroker(pki["server_cert"], pki["server_key"], trusted_ca or pki["ca"], mode=mode)
        brokers.append(broker.start())
        return broker

    yield start
    for broker in brokers:
        broker.stop()


@pytest.fixture
def make_connection(pki):
    connections = []

    def build(port, **overrides):
        values = dict(
            broker_host="127.0.0.1",
            broker_port=port,
            ca_cert=pki["ca"],
            client_cert=pki["client_cert"],
            client_key=pki["client_key"],
            connect_timeout=2.0,
            publish_timeout=2.0,
        )
        values.update(overrides)
        config = make_config(**values)
        connection = BrokerConnection(config, ConnectionState(), CertificateManager(config))
        connections.append(connection)
        return connection

    yield build
    for connection in connections:
        connection.disconnect()


def test_connect_and_acknowledged_publish(start_broker, make_connection):
    broker = start_broker()
    connection = make_connection(broker.port)

    connect_now(connection)
    connection.publish("garage/trigger", "1")

    assert connection.state.status is ConnectionStatus.CONNECTED
    assert broker.published == [("garage/trigger", "1", 1)]
    assert connection.last_publish_time is not None


def test_drop_mid_publish_marks_connection_lost(start_broker, make_connection):
    broker = start_broker(mode="drop")
    connection = make_connection(broker.port)
    lost = []
    connection.add_connection_lost_callback(lambda: lost.append(True))
    connect_now(connection)

    with pytest.raises(PublishConnectionLost):
        connection.publish("garage/trigger", "1")

    assert connection.state.status is ConnectionStatus.RECONNECTING
    assert lost == [True]
    assert not connection.is_connected


def test_untrusted_client_certificate_is_tls_error(pki, start_broker, make_connection):
    broker = start_broker(trusted_ca=pki["other_ca"])
    connection = make_connection(broker.port)

    with pytest.raises(ConnectError) as excinfo:
        connect_now(connection)

    assert excinfo.value.kind is ConnectErrorKind.TLS
    assert connection.state.status is ConnectionStatus.CONNECTING


def test_untrusted_broker_certificate_is_tls_error(pki, start_broker, make_connection):
    broker = start_broker()
    connection = make_connection(broker.port, ca_cert=pki["other_ca"])

    with pytest.raises(ConnectError) as excinfo:
        connect_now(connection)

    assert excinfo.value.kind is ConnectErrorKind.TLS


def test_stalled_handshake_times_out_within_connect_timeout(start_broker, make_connection):
    broker = start_broker(mode="stall")
    connection = make_connection(broker.port, connect_timeout=1.0, keepalive=6)

    started = time.monotonic()
    with pytest.raises(ConnectError) as excinfo:
        connect_now(connection)
    elapsed = time.monotonic() - started

    assert excinfo.value.kind is ConnectErrorKind.TIMEOUT
    assert elapsed < 2.5


def test_closed_port_is_network_error(make_connection):
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]
    listener.close()

    connection = make_connection(port)

    with pytest.raises(ConnectError) as excinfo:
        connect_now(connection)

    assert excinfo.value.kind is ConnectErrorKind.NETWORK
