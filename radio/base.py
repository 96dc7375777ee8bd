"""Abstract base class for LoRaWAN uplink stacks."""

from abc import ABC, abstractmethod
from enum import IntEnum


class TxStatus(IntEnum):
    """Result of a single uplink, as returned by LoRaWanStack.send()."""

    UPLINK_SUCCESS = 1
    UPLINK_FAILED = 2
    NOT_JOINED = 3
    BUSY = 4
    REJECTED = 5
    TIMEOUT = 6


class LoRaWanStack(ABC):
    """
    Abstract base class for LoRaWAN MAC implementations.

    The stack owns join state, duty-cycle accounting and retransmission.
    Callers only hand it frames to send and call poll() frequently so it
    can make progress on its internal state machine.
    """

    @abstractmethod
    def init(self) -> None:
        """
        Initialize the stack and its radio hardware.

        Should be called before send() or poll().
        """
        pass

    @abstractmethod
    def send(self, port: int, data: bytes, confirmed: bool = False) -> int:
        """
        Send one uplink and wait for the transmission to finish.

        Args:
            port: LoRaWAN FPort (1-223)
            data: Frame payload
            confirmed: Request a network acknowledgement

        Returns:
            A TxStatus code
        """
        pass

    @abstractmethod
    def poll(self) -> None:
        """
        Let the stack progress its internal state.

        Must be cheap when nothing is pending and must never block.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the radio hardware."""
        pass

    def __enter__(self):
        """Context manager entry."""
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
