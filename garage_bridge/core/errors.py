"""
异常定义模块

连接级错误（ConnectError）由重连监督器吸收并重试；
发布级错误（PublishError）同步返回给触发它的那一个请求，不自动重试。
"""

from enum import Enum


class BridgeError(Exception):
    """桥接服务异常基类"""


class ConfigurationError(BridgeError):
    """配置无效"""


class CertificateError(BridgeError):
    """证书文件缺失或格式错误"""


class InvalidStateTransition(BridgeError):
    """非法的连接状态迁移"""


class ConnectErrorKind(str, Enum):
    TLS = "Tls"
    NETWORK = "Network"
    TIMEOUT = "Timeout"


class ConnectError(BridgeError):
    """建立MQTT会话失败"""

    def __init__(self, kind: ConnectErrorKind, message: str, fatal: bool = False):
        super().__init__(message)
        self.kind = kind
        self.message = message
        # 致命配置错误（如证书格式错误）也会被重试，只是以错误级别上报
        self.fatal = fatal

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class RejectReason(str, Enum):
    """触发被拒绝的原因"""
    NOT_CONNECTED = "NotConnected"
    PUBLISH_TIMEOUT = "PublishTimeout"
    CONNECTION_LOST = "ConnectionLost"
    PUBLISH_ERROR = "PublishError"


class PublishError(BridgeError):
    """发布失败"""
    reason = RejectReason.PUBLISH_ERROR


class PublishNotConnected(PublishError):
    reason = RejectReason.NOT_CONNECTED


class PublishTimeout(PublishError):
    reason = RejectReason.PUBLISH_TIMEOUT


class PublishConnectionLost(PublishError):
    reason = RejectReason.CONNECTION_LOST
