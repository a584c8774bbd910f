import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from mecalink.auth import create_access_token, require_account
from mecalink.models import Account, AuthLoginRequest, AuthLoginResponse, AuthMeResponse, AuthRegisterRequest, Provider
from mecalink.routers.http_errors import raise_http_error
from mecalink.services.account_store import account_store
from mecalink.services.errors import MecaLinkError, NotFoundError
from mecalink.services.provider_directory import provider_directory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _provider_for(account: Account) -> Optional[Provider]:
    if account.role != "provider":
        return None
    try:
        return provider_directory.find_by_owner(account.id)
    except NotFoundError:
        return None


@router.post("/register", response_model=AuthLoginResponse, status_code=201)
def register(payload: AuthRegisterRequest):
    if payload.role == "provider" and payload.garage is None:
        raise HTTPException(status_code=400, detail="garage: required for provider accounts")
    try:
        account = account_store.register(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            phone=payload.phone,
            role=payload.role,
        )
    except MecaLinkError as exc:
        raise_http_error(exc)

    provider = None
    if payload.garage is not None and account.role == "provider":
        try:
            provider = provider_directory.add_provider(
                owner_account_id=account.id,
                name=account.name,
                email=account.email,
                phone=account.phone,
                address=payload.garage.address,
                position=payload.garage.position,
                services=payload.garage.services,
                description=payload.garage.description,
            )
        except Exception as exc:
            account_store.delete(account.id)
            logger.warning("Rolled back account %s after garage creation failed", account.id)
            if isinstance(exc, MecaLinkError):
                raise_http_error(exc)
            raise

    token, expires_at = create_access_token(account_id=account.id)
    logger.info("Registered %s account %s", account.role, account.id)
    return AuthLoginResponse(access_token=token, account=account, provider=provider, expires_at=expires_at)


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    account = account_store.authenticate(email=payload.email, password=payload.password)
    if account is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, expires_at = create_access_token(account_id=account.id)
    return AuthLoginResponse(
        access_token=token,
        account=account,
        provider=_provider_for(account),
        expires_at=expires_at,
    )


@router.get("/me", response_model=AuthMeResponse)
def me(account: Account = Depends(require_account)):
    return AuthMeResponse(account=account, provider=_provider_for(account))
