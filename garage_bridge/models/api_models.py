"""
HTTP接口响应模型
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class TriggerResponse(BaseModel):
    """车库门触发响应"""
    status: str = Field(..., description="响应状态: success / error")
    message: str = Field(..., description="响应消息；失败时为拒绝原因")


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(..., description="healthy / unhealthy")


class HealthDetailsResponse(BaseModel):
    """健康详情响应"""
    status: str = Field(..., description="healthy / unhealthy")
    service: str = Field(..., description="服务名称")
    version: str = Field(..., description="服务版本")
    connection: Dict[str, Any] = Field(..., description="连接状态快照")
    broker: Optional[Dict[str, Any]] = Field(default=None, description="代理连接信息")
    certificates: Optional[Dict[str, Any]] = Field(default=None, description="证书文件信息")
