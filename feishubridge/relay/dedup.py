"""消息去重。

飞书在没有及时收到ack时会重复投递事件。这里记住最近处理过的消息ID，
在窗口期（默认5分钟）内同一条消息只会被路由一次。
"""

from feishubridge.utils.timers import Timer

DEFAULT_TTL_S = 5 * 60


class DedupStore:
    """
    带过期时间的消息ID集合。

    每次插入都会安排自己的过期定时器，到期后O(1)删除，
    因此内存占用只取决于窗口期内的消息量。
    只能在事件循环中使用。
    """

    def __init__(self, ttl: float = DEFAULT_TTL_S):
        self.ttl = ttl
        self._entries: dict[str, Timer] = {}

    def check_and_mark(self, message_id: str) -> bool:
        """
        原子地检查并标记消息ID。

        Args:
            message_id: 消息ID

        Returns:
            之前已经见过返回True；否则记录下来并返回False
        """
        if self.seen(message_id):
            return True
        self.mark_seen(message_id)
        return False

    def seen(self, message_id: str) -> bool:
        return message_id in self._entries

    def mark_seen(self, message_id: str) -> None:
        """记录消息ID；已存在时不会延长过期时间。"""
        if message_id in self._entries:
            return
        self._entries[message_id] = Timer(self.ttl, self._expire, message_id)

    def expires_at(self, message_id: str) -> float | None:
        """消息ID的过期时间（事件循环时钟），不存在时返回None。"""
        timer = self._entries.get(message_id)
        return timer.deadline if timer else None

    def clear(self) -> None:
        for timer in self._entries.values():
            timer.cancel()
        self._entries.clear()

    def _expire(self, message_id: str) -> None:
        self._entries.pop(message_id, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries
