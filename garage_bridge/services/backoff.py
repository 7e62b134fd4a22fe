"""
重连退避策略
"""

import random
from typing import Optional

# 指数上限，避免浮点溢出
_MAX_EXPONENT = 32


class ExponentialBackoff:
    """
    带抖动的指数退避

    第 n 次失败后的间隔为 base * 2^(n-1) * (1 + U[0, jitter))，并截断到 maximum。
    抖动只向上取值且 jitter < 1，所以相邻两次间隔单调不减，直到达到上限。
    连接成功后调用 reset() 回到基础间隔。
    """

    def __init__(self, base: float, maximum: float, jitter: float = 0.2,
                 rng: Optional[random.Random] = None):
        if base <= 0 or maximum < base:
            raise ValueError("退避参数无效: 需要 0 < base <= maximum")
        if not 0 <= jitter < 1:
            raise ValueError("抖动比例必须在 [0, 1) 范围内")
        self.base = base
        self.maximum = maximum
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._attempts = 0
        self._last_delay = 0.0

    @property
    def attempts(self) -> int:
        return self._attempts

    def next_delay(self) -> float:
        exponent = min(self._attempts, _MAX_EXPONENT)
        self._attempts += 1
        delay = self.base * (2 ** exponent)
        delay *= 1 + self._rng.uniform(0, self.jitter)
        delay = min(max(delay, self._last_delay), self.maximum)
        self._last_delay = delay
        return delay

    def reset(self):
        self._attempts = 0
        self._last_delay = 0.0
