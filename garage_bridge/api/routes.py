"""
API路由模块

本服务不做任何身份认证，完全信任其网络边界：
对 /garage 的访问控制（共享密钥请求头校验）由前置的边缘认证层负责。
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger
from garage_bridge.models import TriggerResponse, HealthResponse, HealthDetailsResponse

router = APIRouter(tags=["车库门桥接"])


@router.post("/garage", response_model=TriggerResponse)
def trigger_garage(request: Request):
    """
    触发车库门

    同步处理函数在线程池中执行：客户端中途断开不会取消已开始的发布，
    发布总会执行到完成或超时。
    """
    logger.info("收到车库门触发请求")
    outcome = request.app.state.trigger_coordinator.trigger()

    if outcome.is_published:
        body = TriggerResponse(status="success", message="Garage door triggered")
        return JSONResponse(status_code=200, content=body.model_dump())

    body = TriggerResponse(status="error", message=outcome.reason.value)
    return JSONResponse(status_code=503, content=body.model_dump())


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """健康检查接口（用于存活/就绪探针）"""
    if request.app.state.health_reporter.is_healthy():
        return JSONResponse(status_code=200, content=HealthResponse(status="healthy").model_dump())
    return JSONResponse(status_code=503, content=HealthResponse(status="unhealthy").model_dump())


@router.get("/health/details", response_model=HealthDetailsResponse)
async def health_details(request: Request):
    """健康详情接口（诊断用）"""
    details = request.app.state.health_reporter.details()
    body = HealthDetailsResponse(
        status="healthy" if details["healthy"] else "unhealthy",
        service=request.app.title,
        version=request.app.version,
        connection=details["connection"],
        broker=details.get("broker"),
        certificates=details.get("certificates"),
    )
    return body
