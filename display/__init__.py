"""
Display package for the OLED transmission status display.

Provides page cycling over destination status, last cycle values and
device information.
"""

from .base import Display, OffPage, ScreenManager, ScreenPage, _format_duration
from .ssd1306 import SSD1306Display
from .status import DeviceInfoPage, LastCyclePage, TransmissionStatusPage

__all__ = [
    # Base classes
    "Display",
    "ScreenPage",
    "ScreenManager",
    "SSD1306Display",
    "OffPage",
    # Transmitter pages
    "TransmissionStatusPage",
    "LastCyclePage",
    "DeviceInfoPage",
    # Utilities
    "_format_duration",
]
