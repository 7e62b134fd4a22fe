"""
证书管理服务
负责检查双向TLS所需的证书文件并构建SSL上下文
"""

import ssl
from pathlib import Path
from typing import Dict, Any
from loguru import logger
from garage_bridge.core.config import BridgeConfig
from garage_bridge.core.errors import CertificateError

CERT_TYPES = ('ca_cert', 'client_cert', 'client_key')
PEM_MARKER = b"-----BEGIN "


class CertificateManager:
    """证书管理器"""

    def __init__(self, config: BridgeConfig):
        self.config = config

    def get_certificate_paths(self) -> Dict[str, Path]:
        return {cert_type: Path(getattr(self.config, cert_type)) for cert_type in CERT_TYPES}

    def check_files(self):
        """
        检查证书文件

        证书由外部挂载（如Kubernetes Secret），服务只读取不写入。
        文件缺失、为空或不是PEM格式时抛出 CertificateError。
        """
        for cert_type, path in self.get_certificate_paths().items():
            if not path.is_file():
                raise CertificateError(f"证书文件不存在: {cert_type}={path}")
            try:
                content = path.read_bytes()
            except OSError as e:
                raise CertificateError(f"证书文件无法读取: {cert_type}={path}, {e}") from e
            if not content.strip():
                raise CertificateError(f"证书文件为空: {cert_type}={path}")
            if PEM_MARKER not in content:
                raise CertificateError(f"证书文件不是PEM格式: {cert_type}={path}")

    def build_ssl_context(self) -> ssl.SSLContext:
        """构建客户端SSL上下文（校验服务端证书，并出示客户端证书）"""
        self.check_files()
        paths = self.get_certificate_paths()

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.verify_mode = ssl.CERT_REQUIRED
        try:
            context.load_verify_locations(cafile=str(paths['ca_cert']))
            context.load_cert_chain(
                certfile=str(paths['client_cert']),
                keyfile=str(paths['client_key'])
            )
        except (ssl.SSLError, OSError) as e:
            raise CertificateError(f"加载证书失败: {e}") from e

        logger.debug(
            f"SSL证书配置完成: CA={paths['ca_cert']}, Cert={paths['client_cert']}, Key={paths['client_key']}"
        )
        return context

    def get_certificate_info(self) -> Dict[str, Any]:
        """获取当前证书信息"""
        certificates = {}
        for cert_type, path in self.get_certificate_paths().items():
            exists = path.is_file()
            certificates[cert_type] = {
                'path': str(path),
                'exists': exists,
                'size': path.stat().st_size if exists else 0
            }
        return certificates
