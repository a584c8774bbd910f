from fastapi import APIRouter, Depends, HTTPException, Query

from mecalink.auth import require_account
from mecalink.models import Account, DeviceTokenRegisterRequest, NotificationRecord
from mecalink.services.notification_store import notification_store

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRecord])
def list_notifications(
    unread_only: bool = Query(default=False),
    account: Account = Depends(require_account),
):
    return notification_store.list_for_account(account_id=account.id, unread_only=unread_only)


@router.post("/register-device", response_model=dict)
def register_device(payload: DeviceTokenRegisterRequest, account: Account = Depends(require_account)):
    notification_store.register_device_token(account_id=account.id, device_token=payload.device_token)
    return {"status": "ok"}


@router.post("/{notification_id}/read", response_model=NotificationRecord)
def mark_notification_read(notification_id: str, account: Account = Depends(require_account)):
    updated = notification_store.mark_read(account_id=account.id, notification_id=notification_id)
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return updated
