"""配置加载工具。

此模块提供了配置文件的加载、保存和格式转换功能。
配置文件使用JSON格式，键名使用camelCase，
但在Python代码中使用snake_case（符合Pydantic规范）。

配置来源的优先级（从高到低）：
1. 传统环境变量（FEISHU_APP_ID、MOLTBOT_GATEWAY_URL等，也可写在.env中）
2. 配置文件 ~/.feishubridge/config.json
3. FEISHUBRIDGE_前缀的环境变量
4. 默认值
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Callable

from dotenv import load_dotenv
from loguru import logger

from feishubridge.config.schema import Config

# 传统环境变量 -> (配置段, 字段)
ENV_ALIASES: dict[str, tuple[str, str]] = {
    "FEISHU_APP_ID": ("feishu", "app_id"),
    "FEISHU_APP_SECRET": ("feishu", "app_secret"),
    "FEISHU_APP_SECRET_PATH": ("feishu", "app_secret_path"),
    "MOLTBOT_GATEWAY_URL": ("backend", "url"),
    "MOLTBOT_AGENT_ID": ("backend", "agent_id"),
    "ANTHROPIC_API_KEY": ("fallback", "api_key"),
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    """
    获取默认配置文件路径。

    Returns:
        配置文件路径（~/.feishubridge/config.json）
    """
    return Path.home() / ".feishubridge" / "config.json"


def load_config(config_path: Path | None = None, env_file: str | None = ".env") -> Config:
    """
    加载配置。

    依次合并配置文件、传统环境变量和.env文件，最后在密钥为空时
    从密钥文件中读取应用密钥。配置文件不存在或无法解析时使用默认值。

    Args:
        config_path: 可选的配置文件路径，如果未提供则使用默认路径
        env_file: 要加载的.env文件，None表示不加载

    Returns:
        加载的配置对象
    """
    if env_file:
        load_dotenv(env_file, override=False)

    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = convert_keys(json.load(f))
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}. Using defaults.")
            data = {}

    data = _apply_env_aliases(data)
    # 直接构造而不是model_validate，这样BaseSettings才会读取FEISHUBRIDGE_环境变量
    config = Config(**data)

    if not config.feishu.app_secret:
        config.feishu.app_secret = read_secret_file(config.feishu.secret_file)

    return config


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """
    保存配置到文件。

    保存前会将snake_case键名转换为camelCase。

    Args:
        config: 要保存的配置对象
        config_path: 可选的保存路径，如果未提供则使用默认路径

    Returns:
        实际写入的路径
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return path


def read_secret_file(path: Path) -> str:
    """
    从文件读取应用密钥。

    Args:
        path: 密钥文件路径

    Returns:
        去除首尾空白的密钥；文件不存在或不可读时返回空字符串
    """
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


def _apply_env_aliases(data: dict[str, Any]) -> dict[str, Any]:
    """
    把传统环境变量合并进配置数据。

    Args:
        data: snake_case的配置数据

    Returns:
        合并后的配置数据
    """
    for env_name, (section, key) in ENV_ALIASES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value
    return data


def convert_keys(data: Any) -> Any:
    """递归地把camelCase键名转换为snake_case（配置文件 → Pydantic）。"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """递归地把snake_case键名转换为camelCase（Pydantic → 配置文件）。"""
    return _rename_keys(data, snake_to_camel)


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """appSecretPath -> app_secret_path"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """app_secret_path -> appSecretPath"""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
