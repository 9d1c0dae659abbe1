"""
Base billing client implementing shared concerns: timeouts, call logging and
error translation.

Concrete providers subclass, implement the BillingGateway methods and route
every remote call through `_call`.
"""
from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from core.logging_config import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class BaseBillingClient:
    provider: str = "base"

    def __init__(self, *, timeouts: Optional[dict[str, float]] = None) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 10.0, "write": 10.0, "total": 30.0}

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]], **fields: Any) -> T:
        """Run one remote call. Never retries; translated errors are re-raised."""
        started = time.perf_counter()
        try:
            result = await fn()
        except Exception as exc:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            translated = self._translate_error(exc)
            logger.warning(
                "gateway_call_failed",
                provider=self.provider,
                operation=operation,
                elapsed_ms=elapsed_ms,
                error_type=type(exc).__name__,
                **fields,
            )
            if translated is not None:
                raise translated from exc
            raise
        self._log(
            "gateway_call",
            operation=operation,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            **fields,
        )
        return result

    def _translate_error(self, exc: Exception) -> Optional[Exception]:
        """Return a domain error to raise instead of `exc`, or None to propagate it."""
        return None

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
