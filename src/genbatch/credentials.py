"""
Round-robin pool of provider credentials.
"""

from __future__ import annotations

import asyncio
import inspect
import os
import threading
import typing as t
from datetime import datetime

import structlog

from genbatch.exceptions import ConfigurationError
from genbatch.models import CredentialEntry

log = structlog.get_logger(__name__)

PlatformMatcher = t.Callable[[str], bool]

DEFAULT_API_KEY_ENV_VAR = "GENBATCH_API_KEY"


class CredentialLibrary(t.Protocol):
    """
    Store of user-managed credentials, e.g. :class:`genbatch.db.store.SqlCredentialLibrary`.
    """

    def list_credentials(self) -> list[CredentialEntry]: ...

    def touch(self, name: str, used_at: datetime) -> t.Awaitable[None] | None: ...


def match_platforms(*platforms: str) -> PlatformMatcher:
    """
    Build a platform predicate accepting the given platform tags.

    Parameters
    ----------
    *platforms : str
        Accepted platform tags, compared case-insensitively. No tags accepts all.

    Returns
    -------
    PlatformMatcher
        Predicate on a lower-cased platform tag.
    """
    accepted = {platform.strip().lower() for platform in platforms if platform.strip()}
    if not accepted:
        return lambda platform: True
    return lambda platform: platform in accepted


class CredentialPool:
    """
    Fixed, ordered set of credentials handed out in round-robin order.

    Entries are loaded once by :meth:`init` from, in order: the environment,
    the user settings, then the credential library filtered by platform.
    """

    def __init__(
        self,
        platform_matcher: PlatformMatcher | None = None,
        *,
        env_var: str = DEFAULT_API_KEY_ENV_VAR,
        settings_api_key: str | None = None,
        library: CredentialLibrary | None = None,
    ) -> None:
        self._platform_matcher = platform_matcher or match_platforms()
        self._env_var = env_var
        self._settings_api_key = settings_api_key
        self._library = library
        self._entries: list[CredentialEntry] = []
        self._index = 0
        self._lock = threading.Lock()
        self._touches: set[asyncio.Future[None]] = set()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[CredentialEntry]:
        return list(self._entries)

    def init(self) -> CredentialPool:
        """
        Load usable credentials.

        Returns
        -------
        CredentialPool
            The pool itself, for chaining.

        Raises
        ------
        ConfigurationError
            If no usable credential was found.
        """
        entries: list[CredentialEntry] = []

        env_secret = (os.getenv(self._env_var) or "").strip()
        if env_secret:
            entries.append(
                CredentialEntry(
                    name="env", secret=env_secret, platform="environment", source="environment"
                )
            )

        settings_secret = (self._settings_api_key or "").strip()
        if settings_secret:
            entries.append(
                CredentialEntry(
                    name="settings",
                    secret=settings_secret,
                    platform="settings",
                    source="settings",
                )
            )

        if self._library is not None:
            for candidate in self._library.list_credentials():
                if not candidate.secret.strip():
                    continue
                if self._platform_matcher((candidate.platform or "").lower()):
                    entries.append(candidate.model_copy(update={"source": "library"}))

        if not entries:
            raise ConfigurationError(
                f"No usable API credential found: set {self._env_var}, "
                "configure an API key in the settings or add one to the credential library"
            )

        with self._lock:
            self._entries = entries
            self._index = 0
        log.info(
            event="Initialized credential pool",
            credential_count=len(entries),
            credential_names=[entry.name for entry in entries],
        )
        return self

    def peek(self) -> CredentialEntry:
        """Return the entry the next :meth:`pick` will hand out, without advancing."""
        with self._lock:
            return self._current()

    def pick(self) -> CredentialEntry:
        """
        Return the next entry and advance the round-robin index.

        Returns
        -------
        CredentialEntry
            Same entry :meth:`peek` returned just before the call.
        """
        used_at = datetime.now()
        with self._lock:
            entry = self._current()
            self._index = (self._index + 1) % len(self._entries)
            entry.last_used = used_at
        if entry.source == "library":
            self._record_last_used(name=entry.name, used_at=used_at)
        return entry

    def get(self, name: str | None) -> CredentialEntry | None:
        """Look up an entry by name, ``None`` when it is not in the pool."""
        if name is None:
            return None
        with self._lock:
            for entry in self._entries:
                if entry.name == name:
                    return entry
        return None

    async def flush(self) -> None:
        """Wait for pending ``last_used`` writes."""
        while self._touches:
            await asyncio.gather(*list(self._touches), return_exceptions=True)

    def _current(self) -> CredentialEntry:
        if not self._entries:
            raise ConfigurationError("Credential pool is not initialized")
        return self._entries[self._index % len(self._entries)]

    def _record_last_used(self, *, name: str, used_at: datetime) -> None:
        if self._library is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        library = self._library

        async def _touch() -> None:
            try:
                if inspect.iscoroutinefunction(library.touch):
                    await library.touch(name, used_at)
                else:
                    await asyncio.to_thread(library.touch, name, used_at)
            except Exception as error:
                log.warning(
                    event="Failed to record credential usage",
                    credential_name=name,
                    error=str(error),
                )

        if loop is None:
            asyncio.run(_touch())
            return
        task = loop.create_task(_touch(), name=f"credential_touch_{name}")
        self._touches.add(task)
        task.add_done_callback(self._touches.discard)
