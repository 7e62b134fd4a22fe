"""
MQTT客户端模块

BrokerConnection 持有至多一个到代理的双向TLS会话，并提供串行化的发布操作。
连接的建立由 ReconnectSupervisor 驱动；意外断开时本模块将状态迁移为 Reconnecting 并通知监督器。
"""

import re
import socket
import ssl
import time
import threading
from functools import partial
from typing import Optional, Callable, Dict, Any, List
from loguru import logger
import paho.mqtt.client as mqtt
from .config import BridgeConfig
from .connection_state import ConnectionState, ConnectionStatus
from .errors import (
    CertificateError,
    ConnectError,
    ConnectErrorKind,
    PublishError,
    PublishNotConnected,
    PublishTimeout,
    PublishConnectionLost,
)

# CONNACK原因码：用户名密码错误 / 未授权（客户端证书身份被拒绝）
IDENTITY_REFUSED_CODES = {134, 135}

# 等待发布确认时的轮询间隔（秒）
PUBLISH_POLL_INTERVAL = 0.05

# 表示传输层已断开的发布返回码
CONNECTION_ERROR_CODES = {mqtt.MQTT_ERR_NO_CONN, mqtt.MQTT_ERR_CONN_LOST}

# paho读socket失败时记录的TLS告警，如 [SSL: TLSV1_ALERT_UNKNOWN_CA]
TLS_ALERT_PATTERN = re.compile(r"\[SSL: \w*ALERT\w*\]")


def _reason_value(reason_code) -> int:
    return int(getattr(reason_code, "value", reason_code))


def classify_connect_failure(error: BaseException, host: str, port: int) -> ConnectError:
    """把建连阶段的socket/TLS异常映射为 ConnectError"""
    if isinstance(error, (ssl.SSLError, ssl.CertificateError)):
        return ConnectError(ConnectErrorKind.TLS, f"TLS握手失败: {error}")
    if isinstance(error, (socket.timeout, TimeoutError)):
        return ConnectError(ConnectErrorKind.TIMEOUT, f"连接超时: {host}:{port}")
    return ConnectError(ConnectErrorKind.NETWORK, f"网络不可达: {host}:{port}, {error}")


class BridgeMQTTClient(mqtt.Client):
    """
    记录最近一次建连异常的paho客户端

    connect_async 模式下建连发生在paho的网络线程里，on_connect_fail 回调拿不到异常本身。
    """

    last_connect_error: Optional[BaseException] = None

    def reconnect(self):
        try:
            return super().reconnect()
        except OSError as e:
            self.last_connect_error = e
            raise


def default_client_factory(config: BridgeConfig) -> mqtt.Client:
    """创建paho客户端；重连由监督器负责，关闭paho自带的自动重连"""
    client = BridgeMQTTClient(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=config.client_id,
        clean_session=True,
        protocol=mqtt.MQTTv311,
        reconnect_on_failure=False,
    )
    client.connect_timeout = config.connect_timeout
    return client


class _Session:
    """一次传输层会话"""

    def __init__(self, client: mqtt.Client, number: int):
        self.client = client
        self.number = number
        self.connack = threading.Event()
        self.refusal: Optional[ConnectError] = None
        self.tls_alert: Optional[str] = None
        self.lost = threading.Event()
        self.announced = False
        self.closing = False

    @property
    def is_live(self) -> bool:
        return self.announced and not self.closing and not self.lost.is_set()


class BrokerConnection:
    """MQTT代理连接管理器"""

    def __init__(
        self,
        config: BridgeConfig,
        state: ConnectionState,
        certificate_manager,
        client_factory: Optional[Callable[[BridgeConfig], mqtt.Client]] = None,
    ):
        self.config = config
        self.state = state
        self.certificate_manager = certificate_manager
        self._client_factory = client_factory or default_client_factory
        self._session: Optional[_Session] = None
        self._session_lock = threading.Lock()
        # 单一物理连接上同一时刻只允许一个发布在途
        self._publish_lock = threading.Lock()
        self._lost_callbacks: List[Callable[[], None]] = []
        self.sessions_established = 0
        self.last_publish_time: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        session = self._session
        return session is not None and session.is_live

    def add_connection_lost_callback(self, callback: Callable[[], None]):
        """添加连接丢失回调"""
        self._lost_callbacks.append(callback)

    def connect(self):
        """
        建立MQTT会话

        调用前状态必须为 Connecting；成功后迁移为 Connected。

        Raises:
            ConnectError: TLS（证书/握手失败或身份被拒绝）、Network（不可达或被拒绝）、
                Timeout（未在 connect_timeout 内完成TCP连接、TLS握手并收到CONNACK）
        """
        self._teardown()

        try:
            context = self.certificate_manager.build_ssl_context()
        except CertificateError as e:
            raise ConnectError(ConnectErrorKind.TLS, str(e), fatal=True) from e

        client = self._client_factory(self.config)
        session = _Session(client, self.sessions_established + 1)
        client.tls_set_context(context)
        client.on_connect = partial(self._on_connect, session)
        client.on_connect_fail = partial(self._on_connect_fail, session)
        client.on_disconnect = partial(self._on_disconnect, session)
        client.on_log = partial(self._on_log, session)
        client.on_publish = self._on_publish

        with self._session_lock:
            self._session = session

        host, port = self.config.broker_host, self.config.broker_port
        logger.info(f"正在连接MQTT代理: {host}:{port}")
        # TCP连接、TLS握手与CONNACK都在paho网络线程中完成，整体受 connect_timeout 约束
        client.connect_async(host, port, keepalive=self.config.keepalive)
        client.loop_start()

        timeout = self.config.connect_timeout
        if not session.connack.wait(timeout):
            self._teardown()
            raise ConnectError(ConnectErrorKind.TIMEOUT, f"未在{timeout}秒内完成连接: {host}:{port}")
        if session.refusal is not None:
            self._teardown()
            raise session.refusal

        with self._session_lock:
            established = self._session is session and not session.lost.is_set()
            if established:
                established = self.state.transition_if(
                    ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED
                ) is not None
            if established:
                session.announced = True
                self.sessions_established += 1

        if not established:
            self._teardown()
            raise ConnectError(ConnectErrorKind.NETWORK, "连接建立后立即断开")

        logger.info(f"MQTT连接成功: {host}:{port} (会话 #{session.number})")

    def disconnect(self):
        """有序关闭连接，状态迁移为 Disconnected"""
        self._teardown()
        self.state.transition(ConnectionStatus.DISCONNECTED)
        logger.info("MQTT连接已断开")

    def publish(self, topic: str, payload: str):
        """
        发布消息并等待代理确认

        Raises:
            PublishNotConnected: 没有可用会话
            PublishTimeout: 未在 publish_timeout 内获得发布通道或代理确认
            PublishConnectionLost: 发布过程中传输层断开
            PublishError: 其他发布失败
        """
        timeout = self.config.publish_timeout
        deadline = time.monotonic() + timeout

        if not self.is_connected:
            raise PublishNotConnected("MQTT客户端未连接")

        if not self._publish_lock.acquire(timeout=timeout):
            raise PublishTimeout(f"等待发布通道超时（{timeout}秒）")
        try:
            session = self._session
            if session is None or not session.is_live:
                raise PublishNotConnected("MQTT客户端未连接")

            try:
                info = session.client.publish(topic, payload, qos=self.config.qos, retain=False)
            except ValueError as e:
                raise PublishError(f"发布参数无效: {e}") from e

            if info.rc in CONNECTION_ERROR_CODES:
                self._mark_lost(session, f"发布时连接丢失, 错误码: {info.rc}")
                raise PublishConnectionLost(f"发布时连接丢失: {topic}")
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise PublishError(f"发布消息失败: {topic}, {mqtt.error_string(info.rc)}")

            self._wait_for_ack(session, info, deadline)
            self.last_publish_time = time.time()
            logger.debug(f"发布消息成功: {topic}")
        finally:
            self._publish_lock.release()

    def _wait_for_ack(self, session: _Session, info, deadline: float):
        while not info.is_published():
            if session.lost.is_set():
                raise PublishConnectionLost("发布过程中连接丢失")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PublishTimeout(f"代理未在{self.config.publish_timeout}秒内确认消息")
            session.lost.wait(min(remaining, PUBLISH_POLL_INTERVAL))

    def probe(self) -> bool:
        """检查到代理的TCP连通性"""
        host, port = self.config.broker_host, self.config.broker_port
        try:
            with socket.create_connection((host, port), timeout=self.config.connect_timeout):
                pass
        except OSError as e:
            logger.warning(f"网络连通性检查失败: {host}:{port}, {e}")
            return False

        logger.debug(f"网络连通性检查通过: {host}:{port}")
        return True

    def get_connection_status(self) -> Dict[str, Any]:
        """获取连接信息（不涉及网络IO）"""
        return {
            "host": self.config.broker_host,
            "port": self.config.broker_port,
            "client_id": self.config.client_id,
            "topic": self.config.topic,
            "qos": self.config.qos,
            "connected": self.is_connected,
            "sessions_established": self.sessions_established,
            "last_publish_time": self.last_publish_time,
        }

    def _teardown(self):
        with self._session_lock:
            session = self._session
            self._session = None
        if session is None:
            return

        session.closing = True
        try:
            session.client.disconnect()
            if session.announced:
                session.client.loop_stop()
            else:
                # 网络线程可能仍阻塞在TLS握手中，不在调用方线程等待其退出
                threading.Thread(
                    target=session.client.loop_stop,
                    name=f"mqtt-teardown-{session.number}",
                    daemon=True,
                ).start()
        except Exception as e:
            logger.warning(f"关闭MQTT会话时发生异常: {e}")

    def _mark_lost(self, session: _Session, reason: str):
        with self._session_lock:
            if session.lost.is_set():
                return
            session.lost.set()
            if self._session is not session or not session.announced:
                return
            changed = self.state.transition_if(
                ConnectionStatus.CONNECTED,
                ConnectionStatus.RECONNECTING,
                attempt=0,
                next_retry=time.time(),
                error=reason,
            )

        logger.warning(f"MQTT连接丢失: {reason}")
        if changed is None:
            return
        for callback in self._lost_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"连接丢失回调执行失败: {e}")

    def _on_connect(self, session: _Session, client, userdata, flags, reason_code, properties=None):
        """连接回调"""
        value = _reason_value(reason_code)
        if value >= 128:
            kind = ConnectErrorKind.TLS if value in IDENTITY_REFUSED_CODES else ConnectErrorKind.NETWORK
            session.refusal = ConnectError(kind, f"代理拒绝连接: {reason_code}")
            logger.error(f"MQTT连接被拒绝: {reason_code}")
        session.connack.set()

    def _on_disconnect(self, session: _Session, client, userdata, disconnect_flags, reason_code, properties=None):
        """断开连接回调"""
        if session.closing:
            logger.debug(f"MQTT会话 #{session.number} 已关闭")
            return

        if not session.connack.is_set():
            if session.tls_alert is not None:
                # TLS 1.3 下代理在握手完成后才发出拒绝客户端证书的告警
                session.refusal = ConnectError(ConnectErrorKind.TLS, f"代理拒绝TLS会话: {session.tls_alert}")
            else:
                session.refusal = ConnectError(ConnectErrorKind.NETWORK, f"握手期间连接被关闭: {reason_code}")
            session.connack.set()

        self._mark_lost(session, f"传输层断开: {reason_code}")

    def _on_connect_fail(self, session: _Session, client, userdata):
        """建连失败回调（TCP连接或TLS握手失败）"""
        if session.closing or session.connack.is_set():
            return
        error = getattr(client, "last_connect_error", None)
        if error is None:
            session.refusal = ConnectError(ConnectErrorKind.NETWORK, "建立连接失败")
        else:
            session.refusal = classify_connect_failure(error, self.config.broker_host, self.config.broker_port)
        session.connack.set()

    def _on_log(self, session: _Session, client, userdata, level, buf):
        """paho日志回调"""
        if level not in (mqtt.MQTT_LOG_ERR, mqtt.MQTT_LOG_WARNING):
            return
        logger.debug(f"paho: {buf}")
        if not session.connack.is_set() and TLS_ALERT_PATTERN.search(buf):
            session.tls_alert = buf

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None):
        """消息发布回调"""
        logger.debug(f"消息发布完成，消息ID: {mid}")
