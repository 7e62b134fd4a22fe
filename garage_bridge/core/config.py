"""
配置文件
包含所有环境变量和应用设置
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """应用配置类（环境变量 / .env）"""

    # 应用基本设置
    APP_NAME: str = Field("garage-mqtt-bridge", description="应用名称")
    APP_VERSION: str = Field("1.0.0", description="应用版本")

    # HTTP服务设置
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8080

    # MQTT代理设置 - 双向TLS连接
    MQTT_HOST: str = "mqtt.example.com"
    MQTT_PORT: int = 8883
    MQTT_CLIENT_ID: str = "garage-mqtt-bridge"
    MQTT_KEEPALIVE: int = 30
    MQTT_QOS: int = 1  # 至少一次

    # 触发消息
    MQTT_TOPIC: str = "garage/trigger"
    MQTT_PAYLOAD: str = "1"

    # 证书路径
    CA_CERT_PATH: str = "/certs/ca.crt"
    CLIENT_CERT_PATH: str = "/certs/client.crt"
    CLIENT_KEY_PATH: str = "/certs/client.key"

    # 超时设置（秒）
    CONNECT_TIMEOUT: float = 10.0
    PUBLISH_TIMEOUT: float = 5.0

    # 重连退避设置（秒）
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 60.0
    RECONNECT_JITTER: float = 0.2
    RECONNECT_PROBE_ENABLED: bool = True

    # 日志设置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # YAML覆盖配置文件路径（不存在时忽略）
    CONFIG_FILE: str = "config/garage-bridge.yaml"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        env_prefix = ""
        extra = "ignore"


class BridgeConfig(BaseModel):
    """进程生命周期内不可变的配置快照"""

    broker_host: str = Field(..., min_length=1, max_length=255, description="MQTT代理地址")
    broker_port: int = Field(8883, ge=1, le=65535, description="MQTT代理端口")
    client_id: str = Field("garage-mqtt-bridge", min_length=1, max_length=255, description="客户端ID")
    keepalive: int = Field(30, ge=5, le=3600, description="保活时间（秒）")
    qos: int = Field(1, ge=0, le=2, description="发布QoS")

    topic: str = Field(..., min_length=1, description="触发主题")
    payload: str = Field("1", description="触发消息内容")

    ca_cert: str = Field(..., min_length=1, description="CA证书路径")
    client_cert: str = Field(..., min_length=1, description="客户端证书路径")
    client_key: str = Field(..., min_length=1, description="客户端私钥路径")

    connect_timeout: float = Field(10.0, gt=0, description="连接超时（秒）")
    publish_timeout: float = Field(5.0, gt=0, description="发布确认超时（秒）")

    reconnect_base_delay: float = Field(1.0, gt=0, description="重连基础间隔（秒）")
    reconnect_max_delay: float = Field(60.0, gt=0, description="重连最大间隔（秒）")
    reconnect_jitter: float = Field(0.2, ge=0, lt=1, description="重连抖动比例")
    reconnect_probe: bool = Field(True, description="重连前是否进行TCP连通性检查")

    http_host: str = Field("0.0.0.0", description="HTTP监听地址")
    http_port: int = Field(8080, ge=1, le=65535, description="HTTP监听端口")
    log_level: str = Field("INFO", description="日志级别")
    log_file: Optional[str] = Field(None, description="日志文件")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_backoff_bounds(self):
        if self.reconnect_max_delay < self.reconnect_base_delay:
            raise ValueError("reconnect_max_delay 不能小于 reconnect_base_delay")
        return self


# 创建全局设置实例
settings = Settings()
