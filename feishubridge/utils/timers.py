"""事件循环上可取消的延迟调用。

消息去重的过期和后端请求的超时都通过Timer实现，
可以从定时器上读出它是已经触发还是被取消。
"""

import asyncio
from typing import Any, Callable


class Timer:
    """
    一次性的延迟回调。

    fired和cancelled最多只有一个为True。回调执行后再调用cancel()，
    或重复调用cancel()，都返回False且没有任何效果。只能在事件循环中创建。
    """

    def __init__(self, delay: float, callback: Callable[..., Any], *args: Any):
        """
        Args:
            delay: 延迟秒数
            callback: 到期时调用的函数
            *args: 传给callback的参数
        """
        loop = asyncio.get_running_loop()
        self.deadline = loop.time() + delay
        self.fired = False
        self.cancelled = False
        self._callback = callback
        self._args = args
        self._handle = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self.cancelled:
            return
        self.fired = True
        self._callback(*self._args)

    def cancel(self) -> bool:
        """
        取消定时器。

        Returns:
            只有这次调用阻止了回调执行时返回True
        """
        if self.fired or self.cancelled:
            return False
        self.cancelled = True
        self._handle.cancel()
        return True

    @property
    def active(self) -> bool:
        return not (self.fired or self.cancelled)

    def remaining(self) -> float:
        """距离截止时间的秒数，已过期时为0。"""
        return max(0.0, self.deadline - asyncio.get_running_loop().time())
