"""
健康状态上报
只读取共享状态快照，不做任何网络IO
"""

from typing import Dict, Any, Optional
from garage_bridge.core.connection_state import ConnectionState


class HealthReporter:
    """健康状态上报器"""

    def __init__(self, state: ConnectionState, connection=None, certificate_manager=None):
        self.state = state
        self.connection = connection
        self.certificate_manager = certificate_manager

    def is_healthy(self) -> bool:
        return self.state.snapshot().is_connected

    def details(self) -> Dict[str, Any]:
        """健康详情（状态与健康结论来自同一快照）"""
        snapshot = self.state.snapshot()
        result: Dict[str, Any] = {
            "healthy": snapshot.is_connected,
            "connection": snapshot.to_dict(),
        }
        if self.connection is not None:
            result["broker"] = self.connection.get_connection_status()
        if self.certificate_manager is not None:
            result["certificates"] = self.certificate_manager.get_certificate_info()
        return result
