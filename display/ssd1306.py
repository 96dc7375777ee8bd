"""SSD1306 OLED display implementation."""

from luma.core.interface.serial import i2c
from luma.core.render import canvas
from luma.oled.device import ssd1306

from .base import Display


class SSD1306Display(Display):
    """128x64 SSD1306 OLED on I2C using luma.oled."""

    def __init__(self, i2c_port: int = 1, i2c_address: int = 0x3C, line_height: int = 10):
        serial = i2c(port=i2c_port, address=i2c_address)
        self._device = ssd1306(serial, width=128, height=64)
        self._line_height = line_height

    @property
    def height(self) -> int:
        return self._device.height

    @property
    def line_height(self) -> int:
        return self._line_height

    def show(self) -> None:
        self._device.show()

    def hide(self) -> None:
        self._device.hide()

    def clear(self) -> None:
        self._device.clear()

    def render_lines(self, lines: list[str | None]) -> None:
        with canvas(self._device) as draw:
            for row, line in enumerate(lines[: self.max_lines]):
                if line is not None:
                    draw.text((0, row * self._line_height), line, fill="white")
