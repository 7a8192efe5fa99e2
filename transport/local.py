"""
Local Transport - In-process chat transport
===========================================

Delivers messages handed to ``deliver`` and keeps everything sent in
``sent``. Used by the ``--test`` CLI mode and by the test suite.
"""

from typing import List, Optional, Tuple

from core.exceptions import TransportError
from .base import Transport, InboundMessage, CONNECTED, DISCONNECTED


class LocalTransport(Transport):
    """
    Example:
        transport = LocalTransport()
        transport.on_message(dispatcher.handle)
        await transport.start()
        await transport.deliver(InboundMessage("+911234567890", "me", "hi"))
        print(transport.sent)
    """

    def __init__(self, address: str = "me"):
        super().__init__()
        self.address = address
        self.sent: List[Tuple[str, str]] = []
        self.running = False
        # Raised by the next sends while set
        self.fail_with: Optional[TransportError] = None

    async def start(self) -> None:
        self.running = True
        self._fire(CONNECTED, {})

    async def stop(self) -> None:
        if self.running:
            self.running = False
            self._fire(DISCONNECTED, {"reason": "stopped"})

    async def send(self, target: str, text: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((target, text))

    async def deliver(self, message: InboundMessage) -> None:
        """Hand a message to the registered handlers and wait for them."""
        await self._dispatch(message)
