"""
Header Signal Watcher
=====================

Turns an out-of-band boolean riding on part headers into capture triggers.

Cameras built around a push button set a header such as
`X-Button-Pressed: 1` on every part while the button is held. The watcher:
    - maps each header update to pressed / not pressed
    - debounces: a value counts only after it has been stable for
      debounce_seconds
    - de-duplicates: only changes of the settled value matter
    - fires on_trigger on every settled rising edge

The stream controller knows nothing about this; the watcher only reads
the controller's published header mapping.
"""

import asyncio
import logging
from typing import Callable, Mapping, Optional

import httpx

from legocam_stream.stream.publisher import Published, Subscription


logger = logging.getLogger(__name__)


DEFAULT_SIGNAL_HEADER = "X-Button-Pressed"
DEFAULT_SIGNAL_VALUE = "1"
DEFAULT_DEBOUNCE_SECONDS = 0.01


class HeaderSignalWatcher:
    """
    Debounced, de-duplicated edge detector over header updates.

    Attributes:
        header: Header name carrying the signal
        value: Header value meaning "pressed"
        debounce_seconds: Stability window before a value settles
        trigger_count: Number of rising edges fired

    Example:
        watcher = HeaderSignalWatcher(on_trigger=sequence.capture)
        task = asyncio.create_task(watcher.run(controller.headers))
        ...
        watcher.stop()
    """

    def __init__(
        self,
        on_trigger: Callable[[], object],
        header: str = DEFAULT_SIGNAL_HEADER,
        value: str = DEFAULT_SIGNAL_VALUE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")

        self.header = header
        self.value = value
        self.debounce_seconds = debounce_seconds
        self._on_trigger = on_trigger

        self._settled: bool = False
        self._pending: Optional[asyncio.TimerHandle] = None
        self._subscription: Optional[Subscription] = None
        self.trigger_count: int = 0

    @property
    def pressed(self) -> bool:
        """Last settled value."""
        return self._settled

    def is_pressed(self, headers: Optional[Mapping[str, str]]) -> bool:
        if not headers:
            return False
        return httpx.Headers(headers).get(self.header) == self.value

    def observe(self, headers: Optional[Mapping[str, str]]) -> None:
        """
        Feed one header update. Must run on the event loop.

        Each update restarts the debounce window.
        """
        pressed = self.is_pressed(headers)
        if self._pending is not None:
            self._pending.cancel()
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.debounce_seconds, self._settle, pressed)

    def _settle(self, pressed: bool) -> None:
        self._pending = None
        if pressed == self._settled:
            return
        self._settled = pressed
        if not pressed:
            return

        self.trigger_count += 1
        logger.info(f"{self.header} signal received (trigger #{self.trigger_count})")
        try:
            self._on_trigger()
        except Exception as e:
            logger.error(f"Capture trigger failed: {e}")

    async def run(self, headers: Published[Optional[Mapping[str, str]]]) -> None:
        """
        Watch a published header mapping until stop() is called.

        Args:
            headers: The controller's published headers
        """
        self._subscription = headers.subscribe(replay=False)
        logger.info(f"Watching {self.header} header for capture signals")
        async for update in self._subscription:
            self.observe(update)
        logger.info("Header signal watcher stopped")

    def stop(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
