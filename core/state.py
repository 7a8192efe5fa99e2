"""
Shared runtime state - connection status and observer notifications
===================================================================

The connection state is the only mutable state shared between message
handlers. It is owned by the dispatcher and read by status reporting.
Observers are plain callables; a failing observer is logged and never
affects message handling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .logging import get_logger

logger = get_logger("core.state")

Observer = Callable[[str, Dict[str, Any]], None]

CONNECTION_STATUS_CHANGED = "connection-status-changed"
MESSAGE_RECORDED = "message-recorded"


class ConnectionStatus(str, Enum):
    NOT_CONNECTED = "not_connected"
    QR_GENERATED = "qr_generated"
    CONNECTED = "connected"


class Notifier:
    """
    Fire-and-forget event fan-out.

    Example:
        notifier = Notifier()
        notifier.subscribe(lambda event, payload: print(event, payload))
        notifier.emit("message-recorded", {"id": 1})
    """

    def __init__(self):
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for observer in list(self._observers):
            try:
                observer(event, payload)
            except Exception as e:
                logger.error(f"Observer failed for {event}: {e}", exc_info=True)


@dataclass
class ConnectionSnapshot:
    status: ConnectionStatus
    qr_code: Optional[str] = None
    reason: Optional[str] = None


class ConnectionState:
    """
    Current transport connection status.

    Every change is announced as ``connection-status-changed``.
    """

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or Notifier()
        self._status = ConnectionStatus.NOT_CONNECTED
        self._qr_code: Optional[str] = None
        self._reason: Optional[str] = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def qr_code(self) -> Optional[str]:
        return self._qr_code

    def snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(self._status, self._qr_code, self._reason)

    def set_status(
        self,
        status: ConnectionStatus,
        reason: Optional[str] = None,
        qr_code: Optional[str] = None
    ) -> None:
        """
        Update the status and notify observers.

        The QR payload is only kept while the status is ``qr_generated``.
        """
        self._status = status
        self._reason = reason
        self._qr_code = qr_code if status == ConnectionStatus.QR_GENERATED else None

        logger.info(f"Connection status: {status.value}" + (f" ({reason})" if reason else ""))

        payload: Dict[str, Any] = {"status": status.value}
        if reason:
            payload["reason"] = reason
        self.notifier.emit(CONNECTION_STATUS_CHANGED, payload)
