"""聊天渠道模块。

此模块提供了渠道的基础接口和飞书长连接渠道。
"""

from feishubridge.channels.base import BaseChannel
from feishubridge.channels.feishu import FeishuChannel

__all__ = ["BaseChannel", "FeishuChannel"]
