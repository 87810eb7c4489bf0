"""连接状态与重连延迟策略。"""

from enum import Enum


class ConnectionState(str, Enum):
    """单个WebSocket连接器的状态。"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ExponentialBackoff:
    """
    指数退避：从initial开始每次翻倍，不超过cap。

    飞书长连接使用：1s, 2s, 4s, 8s ... 60s, 60s ...
    连接成功后调用reset()回到初始值。
    """

    def __init__(self, initial: float = 1.0, cap: float = 60.0, factor: float = 2.0):
        self.initial = initial
        self.cap = cap
        self.factor = factor
        self._next = initial
        self.attempts = 0

    def next_delay(self) -> float:
        """返回本次应等待的秒数，并推进到下一档。"""
        delay = min(self._next, self.cap)
        self._next = min(self._next * self.factor, self.cap)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self._next = self.initial
        self.attempts = 0


class FixedDelay:
    """固定重连间隔（智能体后端使用，默认5秒）。"""

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.attempts = 0

    def next_delay(self) -> float:
        self.attempts += 1
        return self.delay

    def reset(self) -> None:
        self.attempts = 0
