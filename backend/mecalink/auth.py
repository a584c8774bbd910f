import base64
import hashlib
import hmac
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status

from mecalink.models import Account
from mecalink.services.account_store import account_store
from mecalink.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _parse_ttl_hours(raw: Optional[str], default: int = 24) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


TOKEN_TTL_HOURS = _parse_ttl_hours(os.getenv("AUTH_TOKEN_TTL_HOURS"))
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def create_access_token(account_id: str) -> tuple[str, str]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{account_id}|{int(expiry.timestamp())}".encode("utf-8")
    sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    return f"{_b64url(payload)}.{_b64url(sig)}", expiry.isoformat()


def verify_access_token(token: str) -> Optional[str]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
    except ValueError:
        return None
    expected_sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig):
        return None
    try:
        account_id, expiry_ts = payload.decode("utf-8").split("|", 1)
        expired = datetime.now(timezone.utc).timestamp() > int(expiry_ts)
    except ValueError:
        return None
    return None if expired else account_id


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_account(authorization: Optional[str]) -> Optional[Account]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    account_id = verify_access_token(token)
    if not account_id:
        return None
    try:
        return account_store.get(account_id)
    except NotFoundError:
        logger.info("Token for unknown or inactive account %s rejected", account_id)
        return None


def require_account(authorization: Optional[str] = Header(default=None)) -> Account:
    account = resolve_account(authorization)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return account
