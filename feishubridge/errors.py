"""桥接器的异常类型。

所有与消息处理相关的异常最终都会变成一条回复消息，
所有连接相关的异常最终都会触发重连，二者都不会导致进程退出。
"""


class BridgeError(Exception):
    """feishubridge所有异常的基类。"""


class AuthError(BridgeError):
    """飞书凭证交换失败（HTTP错误或返回码非0）。下一次调用会重新尝试。"""


class ConfigError(BridgeError):
    """配置缺失或无效。"""


class ParseError(BridgeError):
    """入站消息内容无法解析。只记录日志，不回复。"""


class BridgeConnectionError(BridgeError, ConnectionError):
    """WebSocket连接失败或断开。由重连循环恢复。"""


class FeishuConnectionError(BridgeConnectionError):
    """飞书长连接不可用（例如获取WebSocket URL失败）。"""


class BackendConnectionError(BridgeConnectionError):
    """智能体后端连接不可用。"""


class BackendError(BridgeError):
    """智能体后端返回了显式的error帧。"""


class BackendTimeoutError(BackendError):
    """在截止时间内没有收到匹配requestId的响应。"""


class CompletionError(BridgeError):
    """直连补全接口调用失败。"""
