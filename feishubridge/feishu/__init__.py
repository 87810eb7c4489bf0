"""飞书开放平台客户端：凭证管理与REST接口。"""

from feishubridge.feishu.api import FeishuAPI
from feishubridge.feishu.auth import TenantTokenManager, Token

__all__ = ["FeishuAPI", "TenantTokenManager", "Token"]
