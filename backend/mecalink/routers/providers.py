from typing import Optional

from fastapi import APIRouter, Depends, Query

from mecalink.auth import require_account
from mecalink.models import Account, Position, Provider, ProviderUpdateRequest
from mecalink.routers.http_errors import raise_http_error
from mecalink.services.errors import MecaLinkError
from mecalink.services.provider_directory import provider_directory

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("", response_model=list[Provider])
def list_providers():
    return provider_directory.find_all()


@router.get("/nearby", response_model=list[Provider])
def nearby_providers(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(default=None),
):
    return provider_directory.nearby(Position(latitude=latitude, longitude=longitude), radius_km=radius)


@router.get("/profile", response_model=Provider)
def my_provider_profile(account: Account = Depends(require_account)):
    try:
        return provider_directory.find_by_owner(account.id)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.put("/profile", response_model=Provider)
def update_my_provider_profile(request: ProviderUpdateRequest, account: Account = Depends(require_account)):
    try:
        provider = provider_directory.find_by_owner(account.id)
        return provider_directory.update(provider.id, account, request.model_dump(exclude_unset=True))
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.get("/{provider_id}", response_model=Provider)
def provider_details(provider_id: str):
    try:
        return provider_directory.find_by_id(provider_id)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.patch("/{provider_id}", response_model=Provider)
def update_provider(
    provider_id: str,
    request: ProviderUpdateRequest,
    account: Account = Depends(require_account),
):
    try:
        return provider_directory.update(provider_id, account, request.model_dump(exclude_unset=True))
    except MecaLinkError as exc:
        raise_http_error(exc)
