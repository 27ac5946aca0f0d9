"""缓存 Key 注册表实现。

禁止在业务代码中硬编码 Redis Key，统一从此处生成，便于失效管理。
"""

from __future__ import annotations


class CacheKeys:
    prefix = "ig"

    # ===== Auth / OAuth =====
    @classmethod
    def oauth_linuxdo_state(cls, state: str) -> str:
        return f"{cls.prefix}:auth:oauth:linuxdo:state:{state}"

