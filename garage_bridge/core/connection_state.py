"""
连接状态模块

整个进程只有一个 ConnectionState 实例，由 BrokerConnection 与 ReconnectSupervisor 修改，
TriggerCoordinator 与 HealthReporter 只读取不可变快照。
"""

import time
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Callable, Dict, Any
from loguru import logger
from .errors import InvalidStateTransition


class ConnectionStatus(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"


# 允许的状态迁移；任何状态都可以在有序关闭时迁移到 DISCONNECTED
ALLOWED_TRANSITIONS = {
    ConnectionStatus.DISCONNECTED: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {ConnectionStatus.CONNECTED, ConnectionStatus.RECONNECTING},
    ConnectionStatus.CONNECTED: {ConnectionStatus.RECONNECTING},
    ConnectionStatus.RECONNECTING: {ConnectionStatus.CONNECTING, ConnectionStatus.RECONNECTING},
}


def _isoformat(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ConnectionSnapshot:
    """连接状态快照"""
    status: ConnectionStatus
    since: float
    attempt: int = 0
    next_retry: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.status.value,
            "attempt": self.attempt,
            "next_retry": _isoformat(self.next_retry),
            "since": _isoformat(self.since),
            "last_error": self.last_error,
        }


class ConnectionState:
    """共享连接状态"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._condition = threading.Condition(threading.Lock())
        self._snapshot = ConnectionSnapshot(ConnectionStatus.DISCONNECTED, since=clock())

    def snapshot(self) -> ConnectionSnapshot:
        with self._condition:
            return self._snapshot

    @property
    def status(self) -> ConnectionStatus:
        return self.snapshot().status

    def transition(
        self,
        status: ConnectionStatus,
        attempt: int = 0,
        next_retry: Optional[float] = None,
        error: Optional[str] = None,
    ) -> ConnectionSnapshot:
        """迁移到新状态，非法迁移抛出 InvalidStateTransition"""
        with self._condition:
            return self._apply(status, attempt, next_retry, error)

    def transition_if(
        self,
        expected: ConnectionStatus,
        status: ConnectionStatus,
        attempt: int = 0,
        next_retry: Optional[float] = None,
        error: Optional[str] = None,
    ) -> Optional[ConnectionSnapshot]:
        """仅当当前状态为 expected 时迁移，否则返回 None"""
        with self._condition:
            if self._snapshot.status is not expected:
                return None
            return self._apply(status, attempt, next_retry, error)

    def wait_for(self, status: ConnectionStatus, timeout: Optional[float] = None) -> bool:
        """阻塞直到进入指定状态或超时"""
        with self._condition:
            return self._condition.wait_for(lambda: self._snapshot.status is status, timeout)

    def _apply(self, status, attempt, next_retry, error) -> ConnectionSnapshot:
        current = self._snapshot
        if status is not ConnectionStatus.DISCONNECTED and status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidStateTransition(f"{current.status.value} -> {status.value}")

        if status is ConnectionStatus.RECONNECTING:
            new = replace(
                current,
                status=status,
                since=self._clock(),
                attempt=attempt,
                next_retry=next_retry,
                last_error=error if error is not None else current.last_error,
            )
        elif status is ConnectionStatus.CONNECTED:
            new = ConnectionSnapshot(status, since=self._clock())
        else:
            new = ConnectionSnapshot(
                status,
                since=self._clock(),
                attempt=current.attempt if status is ConnectionStatus.CONNECTING else 0,
                last_error=error if error is not None else current.last_error,
            )

        self._snapshot = new
        self._condition.notify_all()

        if status is ConnectionStatus.RECONNECTING:
            logger.info(f"连接状态: {current.status.value} -> {status.value} (attempt={attempt})")
        else:
            logger.info(f"连接状态: {current.status.value} -> {status.value}")
        return new
