"""Application bootstrap and lifecycle management."""

from typing import Protocol

import aiosqlite

from .audit import AuditTracker, IAuditTracker
from .config import GovernanceSettings
from .controller import GovernanceController, SynthesisHandler, Transport
from .logging_config import get_logger
from .monitor import HealthMonitor
from .storage import IThoughtStore, ThoughtStore

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...

    @property
    def controller(self) -> GovernanceController:
        """Governance controller."""
        ...

    @property
    def storage(self) -> IThoughtStore:
        """Thought store."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        settings: GovernanceSettings | None = None,
        on_synthesis: SynthesisHandler | None = None,
        transport: Transport | None = None,
    ):
        self._settings = settings or GovernanceSettings.from_env(db_path)
        self._on_synthesis = on_synthesis
        self._transport = transport

        # Components (will be initialized in start())
        self._storage: ThoughtStore | None = None
        self._tracker: IAuditTracker | None = None
        self._monitor: HealthMonitor | None = None
        self._controller: GovernanceController | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies). A failed open leaves buffering degraded.
        self._storage = ThoughtStore(
            self._settings.db_path,
            max_thought_chars=self._settings.max_thought_chars,
            timeout_s=self._settings.store_timeout_s,
        )
        try:
            await self._storage.init()
        except (aiosqlite.Error, OSError) as e:
            logger.error(f"Thought store init failed: {e}", exc_info=True)

        # 2. Audit tracker (depends on Storage)
        self._tracker = AuditTracker(self._storage)

        # 3. Health monitor (no dependencies)
        self._monitor = HealthMonitor(capacity=self._settings.window_samples)

        # 4. Controller (depends on all of the above)
        self._controller = GovernanceController(
            storage=self._storage,
            monitor=self._monitor,
            tracker=self._tracker,
            settings=self._settings,
            on_synthesis=self._on_synthesis,
            transport=self._transport,
        )
        await self._controller.start()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._controller:
            await self._controller.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Thought store closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._monitor:
            self._monitor.clear()
        if self._storage:
            await self._storage.clear()
            logger.info("Thought store cleared")
        if self._controller:
            await self._controller.resume(actor="reset")

    @property
    def settings(self) -> GovernanceSettings:
        return self._settings

    @property
    def storage(self) -> ThoughtStore:
        """Get thought store instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def controller(self) -> GovernanceController:
        """Get governance controller instance."""
        if not self._controller:
            raise RuntimeError("Application not started")
        return self._controller
