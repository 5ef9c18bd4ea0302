"""
Notification Poller

Fetches a user's inbox on a fixed interval as an explicit asyncio task.
The first poll happens immediately on start.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from afyaclaims.config import get_settings
from afyaclaims.core.errors import AdjudicationError, AuthenticationError

from .api import ApiClient
from .projection import NotificationsView

logger = logging.getLogger(__name__)


class NotificationPoller:
    def __init__(
        self,
        api: ApiClient,
        user_id: str,
        interval: Optional[float] = None,
        page_size: int = 20,
        on_update: Optional[Callable[[NotificationsView], Any]] = None,
    ):
        self.api = api
        self.user_id = user_id
        self.interval = interval if interval is not None else get_settings().NOTIFICATION_POLL_SECONDS
        self.page_size = page_size
        self.on_update = on_update
        self.view = NotificationsView()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self) -> "NotificationPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"notification-poller:{self.user_id}")
        logger.info(f"Polling notifications for {self.user_id} every {self.interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"Notification poller for {self.user_id} had failed")
        logger.info(f"Stopped polling notifications for {self.user_id}")

    async def poll_once(self) -> NotificationsView:
        page = await self.api.notifications(self.user_id, limit=self.page_size)
        self.view = self.view.apply_fetch(page)
        if self.on_update is not None:
            result = self.on_update(self.view)
            if inspect.isawaitable(result):
                await result
        return self.view

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except AuthenticationError as exc:
                logger.info(f"Notification polling ended: {exc.message}")
                return
            except AdjudicationError as exc:
                logger.warning(f"Notification poll failed, retrying in {self.interval}s: {exc.message}")
            except Exception:
                logger.exception(f"Notification poll for {self.user_id} raised, retrying in {self.interval}s")
            await asyncio.sleep(self.interval)
