"""使用Pydantic的配置模式定义。

此模块定义了feishubridge的所有配置结构，包括：
- 飞书应用凭证与长连接配置
- 智能体后端（MoltBot Gateway）配置
- 直连补全接口（备用路径）配置
- 消息中继配置

所有配置类都继承自Pydantic的BaseModel，提供类型验证和自动文档生成。
"""

from pathlib import Path

from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings


class FeishuConfig(BaseModel):
    """飞书/Lark应用配置，使用WebSocket长连接。"""
    app_id: str = ""  # 应用ID（从飞书开放平台获取）
    app_secret: str = ""  # 应用密钥；为空时从app_secret_path读取
    app_secret_path: str = "~/.moltbot/secrets/feishu_app_secret"  # 应用密钥文件
    api_base: str = "https://open.feishu.cn/open-apis"  # Lark国际版为 https://open.larksuite.com/open-apis
    token_refresh_margin_s: int = 300  # 提前刷新tenant_access_token的秒数
    heartbeat_interval_s: float = 30.0  # ping间隔
    reconnect_initial_delay_s: float = 1.0  # 重连退避起始值
    reconnect_max_delay_s: float = 60.0  # 重连退避上限
    reaction_emoji: str = "PROCESSING"  # 收到消息后添加的表情
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户ID列表（空表示所有人）

    @property
    def secret_file(self) -> Path:
        return Path(self.app_secret_path).expanduser()


class BackendConfig(BaseModel):
    """智能体后端（MoltBot Gateway）配置。"""
    url: str = "ws://localhost:18789"  # 后端WebSocket地址
    agent_id: str = "main"  # 请求帧中的agentId
    user_prefix: str = "feishu_"  # userId前缀，用于区分来源平台
    request_timeout_s: float = 120.0  # 单个请求的超时时间
    reconnect_delay_s: float = 5.0  # 固定重连间隔
    connect_wait_s: float = 5.0  # 启动时等待首次连接的时间


class FallbackConfig(BaseModel):
    """直连补全接口配置，仅在后端未连接时使用。"""
    api_key: str = ""  # Anthropic API密钥
    api_base: str | None = None  # API基础URL（可选）
    model: str = "anthropic/claude-sonnet-4-20250514"  # 备用模型
    max_tokens: int = 2048  # 最大token数


class RelayConfig(BaseModel):
    """消息中继配置。"""
    dedup_ttl_s: float = 300.0  # 消息去重窗口（秒）


class Config(BaseSettings):
    """
    feishubridge的根配置类。

    支持从环境变量加载配置（通过FEISHUBRIDGE_前缀，嵌套字段用"__"分隔），
    例如 FEISHUBRIDGE_BACKEND__URL=ws://127.0.0.1:18789。
    """
    feishu: FeishuConfig = Field(default_factory=FeishuConfig)  # 飞书配置
    backend: BackendConfig = Field(default_factory=BackendConfig)  # 智能体后端配置
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)  # 备用补全配置
    relay: RelayConfig = Field(default_factory=RelayConfig)  # 中继配置

    def missing_identity(self) -> list[str]:
        """
        检查必需的身份配置。

        Returns:
            缺失项对应的环境变量名列表；为空表示配置完整
        """
        missing = []
        if not self.feishu.app_id:
            missing.append("FEISHU_APP_ID")
        if not self.feishu.app_secret:
            missing.append("FEISHU_APP_SECRET")
        return missing

    model_config = ConfigDict(
        env_prefix="FEISHUBRIDGE_",
        env_nested_delimiter="__"
    )
