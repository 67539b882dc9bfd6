# Overview: Process-wide connectivity flag plus the signed-in principal and tenant namespace.

from __future__ import annotations

import logging
import threading
from typing import Callable

from ..errors import OfflineRejection

logger = logging.getLogger(__name__)


EVENT_ONLINE = "online"
EVENT_OFFLINE = "offline"
EVENT_SIGNED_IN = "signed_in"
EVENT_SIGNED_OUT = "signed_out"

Listener = Callable[[str, "ConnectivityContext"], None]


class ConnectivityContext:
    """
    Connectivity and session state read by every other service.

    online is the manual go-online/go-offline switch. session_ready flips
    when authentication completes; collections only start loading once it
    is set. Listeners are notified in registration order, which the
    composition root uses to keep collections in dependency order.
    """

    def __init__(self, *, tenant_id: str, online: bool = True):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.tenant_id = tenant_id
        self.online = online
        self.user_id: str | None = None
        self.display_name: str | None = None
        self.session_ready = False
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self, event: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event, self)

    def sign_in(self, user_id: str, display_name: str | None = None) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        with self._lock:
            self.user_id = user_id
            self.display_name = display_name
            self.session_ready = True
        logger.info("Session ready for user %s (tenant %s, %s)",
                    user_id, self.tenant_id, "online" if self.online else "offline")
        self._notify(EVENT_SIGNED_IN)

    def sign_out(self) -> None:
        with self._lock:
            if not self.session_ready and self.user_id is None:
                return
            previous = self.user_id
            self.user_id = None
            self.display_name = None
            self.session_ready = False
            self.online = False
        logger.info("User %s signed out; connectivity reset to offline", previous)
        self._notify(EVENT_SIGNED_OUT)

    def go_online(self) -> None:
        with self._lock:
            if self.online:
                return
            self.online = True
        logger.info("ONLINE MODE enabled for tenant %s", self.tenant_id)
        self._notify(EVENT_ONLINE)

    def go_offline(self) -> None:
        with self._lock:
            if not self.online:
                return
            self.online = False
        logger.info("OFFLINE MODE enabled for tenant %s", self.tenant_id)
        self._notify(EVENT_OFFLINE)

    def require_online(self, action: str) -> None:
        if not self.online:
            message = f"Cannot {action} while offline. Please go Online first."
            logger.error("OFFLINE ACTION BLOCKED: %s", message)
            raise OfflineRejection(message)

    @property
    def actor(self) -> dict:
        return {"uid": self.user_id, "name": self.display_name or "N/A"}

    def to_dict(self) -> dict:
        return {
            "online": self.online,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "session_ready": self.session_ready,
        }
