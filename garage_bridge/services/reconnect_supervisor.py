"""
重连监督器

在独立的后台线程中驱动连接状态机：
    Disconnected -> Connecting -> Connected
    Connected -> Reconnecting（由 BrokerConnection 在连接丢失时迁移）
    Reconnecting -> Connecting -> Connected
    Reconnecting -> Reconnecting（连通性检查失败，退避递增）

线程在进程存活期间不会退出；证书格式错误等致命配置错误同样会被重试，
以便在代理暂时不可用时服务仍能启动（Pod调度先于代理就绪的情况）。
"""

import time
import threading
from typing import Optional, Callable
from loguru import logger
from garage_bridge.core.connection_state import ConnectionState, ConnectionStatus
from garage_bridge.core.errors import ConnectError
from garage_bridge.services.backoff import ExponentialBackoff

# 监督循环出现意外异常时的等待时间（秒）
UNEXPECTED_ERROR_DELAY = 5.0


class ReconnectSupervisor:
    """重连监督器"""

    def __init__(
        self,
        connection,
        state: ConnectionState,
        backoff: ExponentialBackoff,
        probe_enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.connection = connection
        self.state = state
        self.backoff = backoff
        self.probe_enabled = probe_enabled
        self._clock = clock
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.connect_attempts = 0

        connection.add_connection_lost_callback(self.notify_connection_lost)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """启动监督线程（不阻塞）"""
        if self.is_running:
            logger.warning("重连监督器已在运行")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="mqtt-reconnect-supervisor", daemon=True)
        self._thread.start()
        logger.info("重连监督器已启动")

    def stop(self, timeout: Optional[float] = None):
        """停止监督线程"""
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("重连监督器未能在超时时间内停止")
            self._thread = None
        logger.info("重连监督器已停止")

    def notify_connection_lost(self):
        """连接丢失通知（由 BrokerConnection 调用）"""
        self._wake.set()

    def wait_until_connected(self, timeout: Optional[float] = None) -> bool:
        return self.state.wait_for(ConnectionStatus.CONNECTED, timeout)

    def _run(self):
        while not self._stop.is_set():
            try:
                self._step()
            except Exception as e:
                logger.exception(f"重连监督器异常: {e}")
                self._stop.wait(UNEXPECTED_ERROR_DELAY)

    def _step(self):
        snapshot = self.state.snapshot()

        if snapshot.status is ConnectionStatus.CONNECTED:
            self._wake.wait()
            self._wake.clear()
            return

        if snapshot.status is ConnectionStatus.CONNECTING:
            # 上一次连接尝试被中断
            self._schedule_retry("连接尝试被中断")
            return

        if snapshot.status is ConnectionStatus.RECONNECTING:
            if not self._sleep_until(snapshot.next_retry):
                return
            if self.probe_enabled and snapshot.attempt > 0 and not self.connection.probe():
                self._schedule_retry("网络连通性检查失败")
                return

        self._attempt_connect()

    def _attempt_connect(self):
        if self._stop.is_set():
            return

        self.state.transition(ConnectionStatus.CONNECTING)
        self.connect_attempts += 1
        try:
            self.connection.connect()
        except ConnectError as e:
            if e.fatal:
                logger.error(f"MQTT连接失败（配置错误，仍将重试）: {e}")
            else:
                logger.error(f"MQTT连接失败: {e}")
            self._schedule_retry(str(e))
            return
        except Exception as e:
            logger.exception(f"MQTT连接异常: {e}")
            self._schedule_retry(str(e))
            return

        if self.backoff.attempts:
            logger.info(f"第 {self.backoff.attempts} 次重连后连接成功")
        self.backoff.reset()

    def _schedule_retry(self, error: str):
        delay = self.backoff.next_delay()
        attempt = self.backoff.attempts
        self.state.transition(
            ConnectionStatus.RECONNECTING,
            attempt=attempt,
            next_retry=self._clock() + delay,
            error=error,
        )
        logger.info(f"等待 {delay:.2f} 秒后进行第 {attempt} 次重连...")

    def _sleep_until(self, deadline: Optional[float]) -> bool:
        """睡眠到指定时间；被停止时返回 False"""
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining > 0:
                self._stop.wait(remaining)
        return not self._stop.is_set()
