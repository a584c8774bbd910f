from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from mecalink.models import NotificationRecord, ServiceRequest
from mecalink.services.push_sender import PushSender, push_sender

EVENT_MESSAGES = {
    "created": ("New service request", "A client needs assistance: {description}"),
    "accepted": ("Request accepted", "{provider_name} accepted your request"),
    "rejected": ("Request declined", "{provider_name} declined your request"),
    "completed": ("Request completed", "{provider_name} marked your request as completed"),
    "cancelled": ("Request cancelled", "The client cancelled request {id}"),
}


class NotificationStore:
    def __init__(self, sender: PushSender):
        self._sender = sender
        self._lock = Lock()
        self._notifications: List[NotificationRecord] = []
        self._device_tokens: Dict[str, set[str]] = {}

    def register_device_token(self, account_id: str, device_token: str) -> None:
        if not device_token.strip():
            return
        with self._lock:
            self._device_tokens.setdefault(account_id, set()).add(device_token.strip())

    def create(
        self,
        account_id: str,
        title: str,
        body: str,
        category: str = "system",
        deep_link: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex[:10]}",
            account_id=account_id,
            title=title,
            body=body,
            category=category,  # type: ignore[arg-type]
            read=False,
            created_at=datetime.now(timezone.utc).isoformat(),
            deep_link=deep_link,
        )
        with self._lock:
            self._notifications.insert(0, record)
            tokens = list(self._device_tokens.get(account_id, set()))
        invalid_tokens = self._sender.send(
            tokens=tokens,
            title=title,
            body=body,
            data={
                "notification_id": record.id,
                "category": category,
                "deep_link": deep_link or "",
            },
        )
        if invalid_tokens:
            with self._lock:
                current = self._device_tokens.get(account_id, set())
                for token in invalid_tokens:
                    current.discard(token)
        return record

    def notify_request_event(self, event: str, request: ServiceRequest, recipients: Iterable[str]) -> None:
        title, template = EVENT_MESSAGES[event]
        body = template.format(
            description=request.description[:80],
            provider_name=request.provider_name or "The garage",
            id=request.id,
        )
        for account_id in recipients:
            self.create(
                account_id=account_id,
                title=title,
                body=body,
                category="request",
                deep_link=f"service-request:{request.id}",
            )

    def list_for_account(self, account_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        with self._lock:
            rows = [n for n in self._notifications if n.account_id == account_id]
            if unread_only:
                rows = [n for n in rows if not n.read]
            return rows[:100]

    def mark_read(self, account_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            for idx, row in enumerate(self._notifications):
                if row.id == notification_id and row.account_id == account_id:
                    updated = row.model_copy(update={"read": True})
                    self._notifications[idx] = updated
                    return updated
        return None


notification_store = NotificationStore(sender=push_sender)
