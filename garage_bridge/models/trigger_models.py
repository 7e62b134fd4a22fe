"""
触发请求与结果的数据模型
"""

from dataclasses import dataclass
from typing import Optional
from garage_bridge.core.errors import RejectReason


@dataclass(frozen=True)
class TriggerIntent:
    """一次触发意图，产生结果后即丢弃"""
    topic: str
    payload: str
    created_at: float


@dataclass(frozen=True)
class TriggerOutcome:
    """一次触发的结果：已发布，或被拒绝（附原因）"""
    intent: TriggerIntent
    reason: Optional[RejectReason] = None
    elapsed: float = 0.0
    detail: Optional[str] = None

    @classmethod
    def published(cls, intent: TriggerIntent, elapsed: float) -> "TriggerOutcome":
        return cls(intent=intent, elapsed=elapsed)

    @classmethod
    def rejected(cls, intent: TriggerIntent, reason: RejectReason, elapsed: float,
                 detail: Optional[str] = None) -> "TriggerOutcome":
        return cls(intent=intent, reason=reason, elapsed=elapsed, detail=detail)

    @property
    def is_published(self) -> bool:
        return self.reason is None
