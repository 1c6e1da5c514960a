"""Per-process password cache so one command prompts at most once per wallet."""

from __future__ import annotations

import asyncio
import atexit
import inspect
import logging
import os
import signal
import threading
from collections.abc import Awaitable, Callable
from typing import Union

logger = logging.getLogger("paperwall.wallet.session")

PasswordPromptFn = Callable[[str], Union[str, Awaitable[str]]]


class SessionPasswordCache:
    """In-memory passwords keyed by lower-cased wallet address.

    Concurrent first lookups for the same address share one in-flight
    prompt, so the user is asked once.  A prompt that raises is not cached.
    Values are overwritten with ``""`` before they are dropped.
    """

    def __init__(self) -> None:
        self._cache: dict[str, str] = {}
        self._pending: dict[str, asyncio.Future[str]] = {}
        self._lock = threading.Lock()
        self._exit_handler_registered = False
        self._previous_handlers: dict[int, object] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_or_prompt(self, address: str, prompt_fn: PasswordPromptFn) -> str:
        """Return the cached password for *address*, prompting on a miss."""
        key = address.lower()

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            pending = self._pending.get(key)
            if pending is None:
                future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
                self._pending[key] = future
                owner = True
            else:
                future = pending
                owner = False

        if not owner:
            return await asyncio.shield(future)

        try:
            result = prompt_fn(address)
            if inspect.isawaitable(result):
                result = await result
        except BaseException as exc:
            with self._lock:
                self._pending.pop(key, None)
            if not future.done():
                if isinstance(exc, asyncio.CancelledError):
                    future.cancel()
                else:
                    future.set_exception(exc)
                    # Waiters get the error; mark it retrieved for the owner.
                    future.exception()
            raise

        with self._lock:
            self._pending.pop(key, None)
            self._cache[key] = result
        if not future.done():
            future.set_result(result)
        return result

    def has(self, address: str) -> bool:
        with self._lock:
            return address.lower() in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def size(self) -> int:
        return len(self)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, address: str) -> bool:
        """Drop one entry.  Returns ``True`` if something was removed."""
        key = address.lower()
        with self._lock:
            if key not in self._cache:
                return False
            self._cache[key] = ""
            del self._cache[key]
            return True

    def clear(self) -> None:
        """Overwrite then drop every cached password."""
        with self._lock:
            for key in self._cache:
                self._cache[key] = ""
            self._cache.clear()

    # ------------------------------------------------------------------
    # Process exit
    # ------------------------------------------------------------------

    def register_exit_handler(self) -> None:
        """Clear the cache on interpreter exit, SIGINT and SIGTERM.

        Safe to call more than once.  Signal handlers can only be installed
        from the main thread; elsewhere only the ``atexit`` hook is added.
        """
        if self._exit_handler_registered:
            return

        atexit.register(self.clear)

        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_signal)
        else:
            logger.debug("Not on main thread; skipping signal handlers for password cache")

        self._exit_handler_registered = True

    def _handle_signal(self, signum: int, frame) -> None:
        self.clear()
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        else:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)


_default_cache: SessionPasswordCache | None = None


def get_session_cache() -> SessionPasswordCache:
    """Process-wide cache instance."""
    global _default_cache
    if _default_cache is None:
        _default_cache = SessionPasswordCache()
    return _default_cache
