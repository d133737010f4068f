import logging
from asyncio import AbstractEventLoop
from signal import Signals


class NodeShutdown(SystemExit):
    """Stops the node, exiting with the number of the signal received."""

    def __init__(self, signal_enum: Signals) -> None:
        self.signal_enum = signal_enum
        super().__init__(signal_enum.value)


def immediate_exit(signal_enum: Signals, loop: AbstractEventLoop) -> None:
    logging.warning(f"Sentinel node stopping on {signal_enum.name}")
    loop.stop()
    raise NodeShutdown(signal_enum)
