"""消息中继模块：去重与路由。"""

from feishubridge.relay.dedup import DedupStore
from feishubridge.relay.router import MessageRouter, extract_text

__all__ = ["DedupStore", "MessageRouter", "extract_text"]
