import logging
import os
from threading import Lock
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

_INVALID_TOKEN_MARKERS = ("registration token", "invalid argument", "not registered")


def _is_invalid_token_error(exc: Optional[BaseException]) -> bool:
    text = str(exc).lower() if exc else ""
    return any(marker in text for marker in _INVALID_TOKEN_MARKERS)


class PushSender:
    """Firebase Cloud Messaging fan-out for request notifications.

    Disabled (every send is a no-op) unless a service-account file is configured.
    """

    def __init__(self, credentials_path: Optional[str] = None):
        self._credentials_path = (credentials_path or "").strip()
        self._lock = Lock()
        self._initialized = False
        self._enabled = False
        self._messaging: Any = None

    @property
    def enabled(self) -> bool:
        self._ensure_initialized()
        return self._enabled

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            if not self._credentials_path:
                logger.info("Push disabled: FIREBASE_CREDENTIALS_PATH not set")
                return
            try:
                import firebase_admin
                from firebase_admin import credentials, messaging

                if not firebase_admin._apps:  # pylint: disable=protected-access
                    firebase_admin.initialize_app(credentials.Certificate(self._credentials_path))
                self._messaging = messaging
                self._enabled = True
                logger.info("Push sender initialized from %s", self._credentials_path)
            except Exception:
                logger.exception("Push disabled: Firebase initialization failed")

    def send(self, tokens: List[str], title: str, body: str, data: dict[str, str]) -> List[str]:
        """Send one message to every token and return the tokens Firebase rejected."""
        self._ensure_initialized()
        if not self._enabled or not tokens:
            return []
        message = self._messaging.MulticastMessage(
            notification=self._messaging.Notification(title=title, body=body),
            tokens=tokens,
            data=data,
        )
        try:
            batch = self._messaging.send_each_for_multicast(message)
        except Exception:
            logger.exception("Push send failed for %d device(s)", len(tokens))
            return []
        return [
            tokens[idx]
            for idx, response in enumerate(batch.responses)
            if not response.success and _is_invalid_token_error(response.exception)
        ]


push_sender = PushSender(credentials_path=os.getenv("FIREBASE_CREDENTIALS_PATH"))
