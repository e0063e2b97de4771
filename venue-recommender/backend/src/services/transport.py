from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional, Type

import requests

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass
class RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    error_cls: Type[Exception],
    timeout: float,
    policy: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> dict:
    """Send a request and decode JSON, retrying network errors and 429/5xx with linear backoff."""
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            if attempt <= policy.retries:
                time.sleep(policy.base_delay * attempt)
                continue
            raise error_cls(f"request error: {exc}") from exc

        if resp.status_code in RETRYABLE_STATUS:
            if attempt <= policy.retries:
                time.sleep(policy.base_delay * attempt)
                continue
            raise error_cls(f"upstream {resp.status_code}: {resp.text[:300]}")

        if not resp.ok:
            raise error_cls(f"upstream {resp.status_code}: {resp.text[:300]}")

        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls("invalid json response") from exc
