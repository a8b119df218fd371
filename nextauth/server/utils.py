"""Small helpers shared by the flow handlers."""

import hashlib
import inspect
from typing import Any, Callable

from ..errors import AdapterError, ConfigurationError, NextAuthError


async def maybe_await(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Call a user hook that may be sync or async."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def hash_token(token: str, secret: str = "") -> str:
    return hashlib.sha256(f"{token}{secret}".encode("utf-8")).hexdigest()


async def call_adapter(adapter: Any, method: str, *args, **kwargs) -> Any:
    """
    Invoke a persistence adapter method.

    Raises:
        ConfigurationError: If no adapter is configured
        AdapterError: If the adapter call fails
    """
    if adapter is None:
        raise ConfigurationError(f"An adapter is required for {method}")

    try:
        return await getattr(adapter, method)(*args, **kwargs)
    except NextAuthError:
        raise
    except Exception as e:
        raise AdapterError(f"Adapter {method} failed: {e}") from e
