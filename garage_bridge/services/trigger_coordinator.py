"""
触发协调器

HTTP层调用的唯一入口。每次调用都是独立的“读取状态-检查-发布”序列：
未连接时立即拒绝，不排队、不补发；已连接时发布配置中的主题和消息。
发布失败只返回给本次调用，不自动重试（重复触发物理动作是不安全的）。
"""

import time
from typing import Callable
from loguru import logger
from garage_bridge.core.config import BridgeConfig
from garage_bridge.core.connection_state import ConnectionState
from garage_bridge.core.errors import PublishError, RejectReason
from garage_bridge.models.trigger_models import TriggerIntent, TriggerOutcome


class TriggerCoordinator:
    """触发协调器"""

    def __init__(self, config: BridgeConfig, state: ConnectionState, connection,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.state = state
        self.connection = connection
        self._clock = clock

    def trigger(self) -> TriggerOutcome:
        intent = TriggerIntent(
            topic=self.config.topic,
            payload=self.config.payload,
            created_at=self._clock(),
        )
        started = time.monotonic()

        snapshot = self.state.snapshot()
        if not snapshot.is_connected:
            logger.warning(f"拒绝触发请求: MQTT未连接（当前状态: {snapshot.status.value}）")
            return TriggerOutcome.rejected(
                intent, RejectReason.NOT_CONNECTED, time.monotonic() - started,
                detail=snapshot.status.value,
            )

        try:
            self.connection.publish(intent.topic, intent.payload)
        except PublishError as e:
            logger.error(f"车库门触发失败: {e.reason.value}, {e}")
            return TriggerOutcome.rejected(intent, e.reason, time.monotonic() - started, detail=str(e))

        elapsed = time.monotonic() - started
        logger.info(f"车库门触发消息已发布: {intent.topic} ({elapsed * 1000:.0f} ms)")
        return TriggerOutcome.published(intent, elapsed)
