from __future__ import annotations

from typing import Any

import httpx

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


def create_async_http_client(
    *,
    timeout: float | httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    创建出站 httpx.AsyncClient（OAuth 提供方调用等）。

    - timeout 缺省时使用 DEFAULT_TIMEOUT，避免上游挂起拖住回调请求
    - transport 可注入（测试中使用 httpx.MockTransport / ASGITransport）
    """
    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else DEFAULT_TIMEOUT,
        transport=transport,
        **client_kwargs,
    )
