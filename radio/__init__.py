"""
LoRaWAN stacks for the transmitter.

This package provides the LoRaWAN stack abstraction and an implementation
for serial-attached RN2483/RN2903 modems.
"""

from .base import LoRaWanStack, TxStatus
from .rn2483 import RN2483Stack

__all__ = [
    "LoRaWanStack",
    "RN2483Stack",
    "TxStatus",
]
