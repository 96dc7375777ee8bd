"""
OLED status display with page cycling.

Display is the hardware abstraction; ScreenPage subclasses produce text
lines; ScreenManager renders the current page periodically and whenever
refresh() is called (e.g. after a destination status change).
"""

import logging
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


# =============================================================================
# Display Hardware Abstraction
# =============================================================================


class Display(ABC):
    """Abstract base class for display hardware."""

    @property
    @abstractmethod
    def height(self) -> int:
        """Display height in pixels."""
        pass

    @property
    @abstractmethod
    def line_height(self) -> int:
        """Height of a single text line in pixels."""
        pass

    @property
    def max_lines(self) -> int:
        """Maximum visible lines based on height and line_height."""
        return self.height // self.line_height

    @abstractmethod
    def show(self) -> None:
        pass

    @abstractmethod
    def hide(self) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def render_lines(self, lines: list[str | None]) -> None:
        """Render lines of text; None entries are blank lines."""
        pass


# =============================================================================
# Screen Pages
# =============================================================================


class ScreenPage(ABC):
    """A page of text lines. Pages with only None lines switch the screen off."""

    @abstractmethod
    def get_lines(self) -> list[str | None]:
        pass


class OffPage(ScreenPage):
    """Page that turns the screen off."""

    def get_lines(self) -> list[str | None]:
        return [None, None, None, None]


# =============================================================================
# Screen Manager
# =============================================================================


class ScreenManager:
    """
    Renders the current page and cycles pages on request.

    refresh() is safe to call from any thread; renders are serialized.
    """

    def __init__(
        self,
        display: Display,
        pages: list[ScreenPage],
        refresh_interval: float = 0.5,
    ):
        self._display = display
        self._pages = pages
        self._current_page_idx = 0
        self._refresh_interval = refresh_interval
        self._running = False
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._render_lock = threading.Lock()

    @property
    def current_page(self) -> ScreenPage:
        with self._lock:
            return self._pages[self._current_page_idx]

    def advance_page(self) -> None:
        """Advance to the next page, wrapping to first."""
        with self._lock:
            self._current_page_idx = (self._current_page_idx + 1) % len(self._pages)
        self.refresh()

    def set_page(self, index: int) -> None:
        """Set the current page by index (thread-safe)."""
        with self._lock:
            if 0 <= index < len(self._pages):
                self._current_page_idx = index
        self.refresh()

    def refresh(self) -> None:
        """Render the current page now."""
        lines = self.current_page.get_lines()
        with self._render_lock:
            if all(line is None for line in lines):
                self._display.hide()
                return
            self._display.show()
            self._display.render_lines(lines[: self._display.max_lines])

    def start(self) -> None:
        """Start the periodic refresh thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="ScreenManager"
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the refresh thread and clear the display."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
        self._display.clear()

    def _run(self) -> None:
        while self._running:
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Display refresh error: {e}")
            time.sleep(self._refresh_interval)


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    seconds = int(seconds)

    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m{seconds % 60}s"
    else:
        return f"{seconds // 3600}h{(seconds % 3600) // 60}m"
