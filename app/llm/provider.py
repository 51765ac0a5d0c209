"""Uniform result type for calls to external model providers.

Every completion, embedding or classification call goes through
``call_provider`` so that errors and timeouts surface as a typed
``ProviderFailure`` value instead of an exception. Callers pick the safe
default with ``unwrap_or``.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.errors import ProviderFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderResult(Generic[T]):
    value: T | None = None
    error: ProviderFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        if self.error is not None or self.value is None:
            return default
        return self.value


async def call_provider(
    operation: str,
    awaitable: Awaitable[T],
    timeout: float,
) -> ProviderResult[T]:
    """Await a provider call, bounding it by ``timeout`` seconds."""
    try:
        value = await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError:
        logger.warning("%s timed out after %.1fs", operation, timeout)
        return ProviderResult(error=ProviderFailure(operation, "timeout"))
    except Exception as e:
        logger.warning("%s failed", operation, exc_info=True)
        return ProviderResult(error=ProviderFailure(operation, str(e) or type(e).__name__))
    return ProviderResult(value=value)
