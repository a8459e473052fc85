"""Project lookup cache used when materializing tasks in a sink provider."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

from inbox.core.config import settings
from inbox.schemas.task import ProjectSummary

logger = logging.getLogger(__name__)

ListProjects = Callable[[], Awaitable[list[ProjectSummary]]]
CreateProject = Callable[[str], Awaitable[ProjectSummary]]


@dataclass
class _CachedProjects:
    expires_at: float
    projects: list[ProjectSummary]


@dataclass
class _KeyLock:
    lock: asyncio.Lock
    users: int = 0


class ProjectCache:
    """
    Short-lived cache of provider project listings.

    Entries are keyed by (provider, user, generation). The generation is
    bumped after every project creation, which invalidates older listings.
    Get-or-create is serialized per (provider, user, project name) so two
    concurrent callers never create the same missing project twice.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.SINK_PROJECT_CACHE_TTL_SECONDS
        )
        self._clock = clock
        self._generations: dict[tuple[str, UUID], int] = {}
        self._entries: dict[tuple[str, UUID, int], _CachedProjects] = {}
        self._locks: dict[tuple[str, UUID, str], _KeyLock] = {}

    def generation(self, provider_kind: str, user_id: UUID) -> int:
        return self._generations.get((provider_kind, user_id), 0)

    def invalidate(self, provider_kind: str, user_id: UUID) -> int:
        key = (provider_kind, user_id)
        previous = self._generations.get(key, 0)
        self._entries.pop((provider_kind, user_id, previous), None)
        self._generations[key] = previous + 1
        return previous + 1

    async def _list_projects(
        self, provider_kind: str, user_id: UUID, list_projects: ListProjects
    ) -> list[ProjectSummary]:
        key = (provider_kind, user_id, self.generation(provider_kind, user_id))
        cached = self._entries.get(key)
        now = self._clock()
        if cached is not None and cached.expires_at > now:
            return cached.projects

        projects = await list_projects()
        self._entries[key] = _CachedProjects(expires_at=now + self.ttl_seconds, projects=projects)
        return projects

    async def get_or_create(
        self,
        *,
        provider_kind: str,
        user_id: UUID,
        name: str,
        list_projects: ListProjects,
        create_project: CreateProject,
    ) -> ProjectSummary:
        key = (provider_kind, user_id, name)
        key_lock = self._locks.setdefault(key, _KeyLock(asyncio.Lock()))
        key_lock.users += 1
        try:
            async with key_lock.lock:
                return await self._get_or_create(
                    provider_kind, user_id, name, list_projects, create_project
                )
        finally:
            key_lock.users -= 1
            if not key_lock.users:
                # Last holder or waiter for this key
                del self._locks[key]

    async def _get_or_create(
        self,
        provider_kind: str,
        user_id: UUID,
        name: str,
        list_projects: ListProjects,
        create_project: CreateProject,
    ) -> ProjectSummary:
        projects = await self._list_projects(provider_kind, user_id, list_projects)
        for project in projects:
            if project.name == name:
                return project

        project = await create_project(name)
        generation = self.invalidate(provider_kind, user_id)
        logger.info(
            "Created %s project %r for user %s (cache generation %s)",
            provider_kind,
            name,
            user_id,
            generation,
        )
        return project
