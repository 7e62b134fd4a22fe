"""
车库门MQTT桥接服务主程序
"""

import sys
from contextlib import asynccontextmanager
from typing import Optional, Callable
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from garage_bridge.core.config import BridgeConfig, settings
from garage_bridge.core.config_loader import load_bridge_config
from garage_bridge.core.logger import setup_logger
from garage_bridge.core.connection_state import ConnectionState
from garage_bridge.core.mqtt_client import BrokerConnection
from garage_bridge.services.backoff import ExponentialBackoff
from garage_bridge.services.certificate_manager import CertificateManager
from garage_bridge.services.health_reporter import HealthReporter
from garage_bridge.services.reconnect_supervisor import ReconnectSupervisor
from garage_bridge.services.trigger_coordinator import TriggerCoordinator
from garage_bridge.api.routes import router


def create_app(
    config: Optional[BridgeConfig] = None,
    client_factory: Optional[Callable] = None,
    certificate_manager=None,
) -> FastAPI:
    """创建应用并装配连接状态、连接、监督器、协调器与健康上报器"""
    if config is None:
        config = load_bridge_config(settings)

    setup_logger(config.log_level, config.log_file)

    state = ConnectionState()
    if certificate_manager is None:
        certificate_manager = CertificateManager(config)
    connection = BrokerConnection(config, state, certificate_manager, client_factory)
    supervisor = ReconnectSupervisor(
        connection,
        state,
        ExponentialBackoff(
            config.reconnect_base_delay,
            config.reconnect_max_delay,
            config.reconnect_jitter,
        ),
        probe_enabled=config.reconnect_probe,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("正在启动车库门MQTT桥接服务...")
        logger.info(f"MQTT代理: {config.broker_host}:{config.broker_port}, 主题: {config.topic}")

        # 代理不可用时服务照常启动，由监督器在后台重连
        supervisor.start()
        logger.info("服务启动完成")

        yield

        logger.info("正在关闭服务...")
        supervisor.stop(timeout=config.connect_timeout + 1)
        connection.disconnect()
        logger.info("服务已关闭")

    app = FastAPI(
        title=settings.APP_NAME,
        description="车库门MQTT桥接服务 - 将HTTP触发请求转换为MQTT发布",
        version=settings.APP_VERSION,
        lifespan=lifespan
    )

    app.state.config = config
    app.state.connection_state = state
    app.state.broker_connection = connection
    app.state.reconnect_supervisor = supervisor
    app.state.trigger_coordinator = TriggerCoordinator(config, state, connection)
    app.state.health_reporter = HealthReporter(state, connection, certificate_manager)

    # 全局异常处理器
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"全局异常: {exc}")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"}
        )

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    try:
        bridge_config = load_bridge_config(settings)
        uvicorn.run(
            create_app(bridge_config),
            host=bridge_config.http_host,
            port=bridge_config.http_port,
            log_level=bridge_config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("收到中断信号，正在关闭...")
    except Exception as e:
        logger.error(f"服务运行异常: {e}")
        sys.exit(1)
