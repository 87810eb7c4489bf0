"""feishubridge工具函数模块。

此模块提供了字符串、定时器和重连策略等辅助工具。
"""

from feishubridge.utils.helpers import mask_secret, truncate_string
from feishubridge.utils.reconnect import ConnectionState, ExponentialBackoff, FixedDelay
from feishubridge.utils.timers import Timer

__all__ = [
    "mask_secret",
    "truncate_string",
    "ConnectionState",
    "ExponentialBackoff",
    "FixedDelay",
    "Timer",
]
