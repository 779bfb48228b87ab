from __future__ import annotations

import json
import random
import ssl
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping


RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
MAX_RETRY_AFTER_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库），用于 webhook 通知投递。

    策略：
    - 对 429/5xx 与连接错误做有限次退避重试；429 带 Retry-After 时优先按服务端要求等待
    - 统一超时、User-Agent
    - 单次 CLI 调用里会同步等待，所以默认重试次数和超时都偏小
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        user_agent: str = "mungmung/0",
        max_retries: int = 2,
        base_backoff_seconds: float = 0.5,
        verify_ssl: bool = True,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_retries = max_retries
        self._base_backoff_seconds = base_backoff_seconds
        self._ssl_context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()

    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        request_headers = {
            "User-Agent": self._user_agent,
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }
        request_headers.update(headers or {})

        attempt = 0
        while True:
            req = urllib.request.Request(url=url, data=body, headers=request_headers, method="POST")
            try:
                return self._send(req)
            except urllib.error.HTTPError as e:
                if e.code not in RETRYABLE_STATUS or attempt >= self._max_retries:
                    raise
                delay = self._retry_after(e) or self._backoff(attempt)
            except (urllib.error.URLError, TimeoutError):
                if attempt >= self._max_retries:
                    raise
                delay = self._backoff(attempt)
            attempt += 1
            time.sleep(delay)

    def _send(self, req: urllib.request.Request) -> HttpResponse:
        with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:  # noqa: S310
            return HttpResponse(
                status=getattr(resp, "status", 200),
                url=req.full_url,
                headers=dict(resp.headers.items()) if getattr(resp, "headers", None) else {},
                body=resp.read(),
            )

    def _backoff(self, attempt: int) -> float:
        backoff = self._base_backoff_seconds * (2**attempt)
        return backoff + random.random() * 0.25 * backoff

    @staticmethod
    def _retry_after(err: urllib.error.HTTPError) -> float | None:
        raw = err.headers.get("Retry-After") if err.headers is not None else None
        try:
            seconds = float(raw) if raw else None
        except ValueError:
            return None
        if seconds is None or seconds < 0:
            return None
        return min(seconds, MAX_RETRY_AFTER_SECONDS)
