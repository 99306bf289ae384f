"""Package data sync, triggered fire-and-forget after a package is created.

``SyncTrigger`` starts the sync routine as a detached asyncio task and
returns at once. The creating caller never learns whether the sync started,
finished or failed; failures are only logged. There is no retry, no
backpressure and no cancellation API.

``SyncPackageData`` is the default routine: it looks the package up on the
hex.pm API and stores the descriptive fields the catalog shows.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from package_grids.core.config import settings
from package_grids.core.database import async_session_maker
from package_grids.core.logging import get_logger
from package_grids.core.tracing import trace_async
from package_grids.models.base import utcnow
from package_grids.models.package import Package
from package_grids.repositories.package import PackageRepository

logger = get_logger(__name__)

SyncRoutine = Callable[[Package], Awaitable[Any]]

REPOSITORY_LINK_KEYS = ("github", "gitlab", "bitbucket", "source", "repository")
HOMEPAGE_LINK_KEYS = ("website", "homepage", "home", "docs", "documentation")


class SyncTrigger:
    """Launch the sync routine for a package without waiting for it.

    Args:
        routine: Coroutine function called with the created package.
            Defaults to ``SyncPackageData().sync_package_data``.
        enabled: Override ``settings.sync_enabled``.
    """

    def __init__(self, routine: Optional[SyncRoutine] = None, enabled: bool | None = None) -> None:
        self._routine = routine
        self._enabled = settings.sync_enabled if enabled is None else enabled
        # Strong references so running tasks are not garbage collected.
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def routine(self) -> SyncRoutine:
        if self._routine is None:
            self._routine = SyncPackageData().sync_package_data
        return self._routine

    def trigger(self, package: Package) -> Optional[asyncio.Task[None]]:
        """Schedule the sync for ``package`` and return immediately."""
        if not self._enabled:
            logger.debug("Package data sync disabled", package_id=package.id)
            return None

        task = asyncio.create_task(
            self._run(package),
            name=f"sync-package-data-{package.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Package data sync scheduled", package_id=package.id, name=package.name)
        return task

    async def _run(self, package: Package) -> None:
        try:
            await self.routine(package)
        except Exception as e:
            logger.error(
                "Package data sync failed",
                package_id=package.id,
                name=package.name,
                error=str(e),
                exc_info=True,
            )


def _pick_link(links: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    lowered = {str(key).lower(): value for key, value in links.items()}
    for key in keys:
        value = lowered.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_package_fields(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a hex.pm package payload onto sync-owned Package columns."""
    meta = payload.get("meta") or {}
    links = meta.get("links") or {}
    downloads = payload.get("downloads") or {}

    return {
        "description": meta.get("description"),
        "latest_version": payload.get("latest_stable_version") or payload.get("latest_version"),
        "downloads": downloads.get("all"),
        "repository_url": _pick_link(links, REPOSITORY_LINK_KEYS),
        "homepage_url": _pick_link(links, HOMEPAGE_LINK_KEYS) or payload.get("html_url"),
    }


class SyncPackageData:
    """Fetch registry metadata for a package and store it.

    Runs outside the request that created the package, so it opens its own
    session from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._session_factory = session_factory or async_session_maker
        self._api_url = (api_url or settings.hex_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.sync_timeout_seconds
        self._transport = transport

    @trace_async("sync.fetch_package", source="hex")
    async def fetch(self, name: str) -> Optional[dict[str, Any]]:
        """Fetch the registry payload for ``name``; None if the registry has no such package.

        Raises:
            httpx.HTTPError: For transport errors and non-404 error responses
        """
        async with httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            response = await client.get(f"/packages/{name}")

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return response.json()

    async def sync_package_data(self, package: Package) -> Optional[Package]:
        """Fetch and store registry data for ``package``.

        Returns:
            The updated package, or None if the registry or the catalog no
            longer knows it
        """
        payload = await self.fetch(package.name)
        if payload is None:
            logger.warning("Package not found on registry", package_id=package.id, name=package.name)
            return None

        fields = extract_package_fields(payload)
        async with self._session_factory() as session:
            repo = PackageRepository(session)
            updated = await repo.store_sync_data(package.id, synced_at=utcnow(), **fields)
            if updated is None:
                logger.warning("Package deleted before sync finished", package_id=package.id)
                return None
            await repo.commit()

        logger.info(
            "Package data synced",
            package_id=package.id,
            name=package.name,
            latest_version=fields["latest_version"],
        )
        return updated
