"""feishubridge的实用工具函数。

此模块提供了字符串处理等常见操作。
"""


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到最大长度，如果被截断则添加后缀。

    Args:
        s: 要截断的字符串
        max_len: 最大长度，默认为100
        suffix: 截断时添加的后缀，默认为"..."

    Returns:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def mask_secret(value: str, visible: int = 4) -> str:
    """
    遮盖密钥，只保留末尾几位用于辨认。

    Args:
        value: 原始密钥
        visible: 保留的末尾字符数

    Returns:
        遮盖后的字符串；空值返回空字符串
    """
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
