import sys
from pathlib import Path
from unittest.mock import MagicMock

# Project root on the path so tests import utils/, radio/, transmission/
sys.path.insert(0, str(Path(__file__).parent))

# The OLED and page button need Pi hardware; tests run on dev machines
for module in (
    "gpiozero",
    "luma",
    "luma.core",
    "luma.core.interface",
    "luma.core.interface.serial",
    "luma.core.render",
    "luma.oled",
    "luma.oled.device",
):
    sys.modules[module] = MagicMock()
