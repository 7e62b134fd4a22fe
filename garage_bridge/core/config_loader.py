"""
配置加载器模块
将环境变量配置与可选的YAML覆盖文件合并为不可变的配置快照
"""

from typing import Dict, Any, Optional
from pathlib import Path
import yaml
from loguru import logger
from pydantic import ValidationError
from .config import Settings, BridgeConfig, settings as default_settings
from .errors import ConfigurationError

# YAML节 -> 配置快照字段
YAML_FIELD_MAP = {
    'mqtt': {
        'host': 'broker_host',
        'port': 'broker_port',
        'client_id': 'client_id',
        'keepalive': 'keepalive',
        'qos': 'qos',
    },
    'ssl': {
        'ca_cert': 'ca_cert',
        'client_cert': 'client_cert',
        'client_key': 'client_key',
    },
    'trigger': {
        'topic': 'topic',
        'payload': 'payload',
        'publish_timeout': 'publish_timeout',
    },
    'reconnect': {
        'connect_timeout': 'connect_timeout',
        'base_delay': 'reconnect_base_delay',
        'max_delay': 'reconnect_max_delay',
        'jitter': 'reconnect_jitter',
        'probe': 'reconnect_probe',
    },
}

class ConfigLoader:
    """配置加载器"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.config_file = Path(self.settings.CONFIG_FILE)

    def _base_values(self) -> Dict[str, Any]:
        """环境变量中的配置值"""
        s = self.settings
        return {
            'broker_host': s.MQTT_HOST,
            'broker_port': s.MQTT_PORT,
            'client_id': s.MQTT_CLIENT_ID,
            'keepalive': s.MQTT_KEEPALIVE,
            'qos': s.MQTT_QOS,
            'topic': s.MQTT_TOPIC,
            'payload': s.MQTT_PAYLOAD,
            'ca_cert': s.CA_CERT_PATH,
            'client_cert': s.CLIENT_CERT_PATH,
            'client_key': s.CLIENT_KEY_PATH,
            'connect_timeout': s.CONNECT_TIMEOUT,
            'publish_timeout': s.PUBLISH_TIMEOUT,
            'reconnect_base_delay': s.RECONNECT_BASE_DELAY,
            'reconnect_max_delay': s.RECONNECT_MAX_DELAY,
            'reconnect_jitter': s.RECONNECT_JITTER,
            'reconnect_probe': s.RECONNECT_PROBE_ENABLED,
            'http_host': s.HTTP_HOST,
            'http_port': s.HTTP_PORT,
            'log_level': s.LOG_LEVEL,
            'log_file': s.LOG_FILE,
        }

    def load_overrides(self) -> Dict[str, Any]:
        """读取YAML覆盖配置，文件不存在时返回空字典"""
        if not self.config_file.exists():
            logger.debug(f"覆盖配置文件不存在，跳过: {self.config_file}")
            return {}

        try:
            with open(self.config_file, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML解析错误: {self.config_file}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"无法读取配置文件: {self.config_file}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"配置文件格式错误，顶层必须是映射: {self.config_file}")

        overrides: Dict[str, Any] = {}
        for section, fields in YAML_FIELD_MAP.items():
            values = data.get(section) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"配置节 {section} 必须是映射")
            for key, field_name in fields.items():
                if key in values:
                    overrides[field_name] = values[key]

        unknown = set(data) - set(YAML_FIELD_MAP)
        if unknown:
            logger.warning(f"忽略未知配置节: {sorted(unknown)}")

        logger.info(f"配置文件加载成功: {self.config_file}")
        return overrides

    def build_snapshot(self) -> BridgeConfig:
        """生成配置快照"""
        values = self._base_values()
        values.update(self.load_overrides())
        try:
            return BridgeConfig(**values)
        except ValidationError as e:
            raise ConfigurationError(f"配置验证失败: {e}") from e


def load_bridge_config(settings: Optional[Settings] = None) -> BridgeConfig:
    """加载配置快照"""
    return ConfigLoader(settings).build_snapshot()
