"""
数据模型模块
"""

from .trigger_models import TriggerIntent, TriggerOutcome
from .api_models import TriggerResponse, HealthResponse, HealthDetailsResponse

__all__ = [
    "TriggerIntent",
    "TriggerOutcome",
    "TriggerResponse",
    "HealthResponse",
    "HealthDetailsResponse"
]
