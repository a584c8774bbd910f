from fastapi import APIRouter, Depends

from mecalink.auth import require_account
from mecalink.models import Account, RequestStatusChange, ServiceRequest, ServiceRequestCreate, StatusTransitionRequest
from mecalink.routers.http_errors import raise_http_error
from mecalink.services.errors import MecaLinkError
from mecalink.services.request_lifecycle import request_lifecycle

router = APIRouter(prefix="/service-requests", tags=["service-requests"])


@router.post("", response_model=ServiceRequest, status_code=201)
def create_request(request: ServiceRequestCreate, account: Account = Depends(require_account)):
    try:
        return request_lifecycle.create_request(
            account,
            provider_id=request.provider_id,
            description=request.description,
            location=request.location,
            vehicle_info=request.vehicle_info,
            urgency=request.urgency,
        )
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.get("/client", response_model=list[ServiceRequest])
def list_client_requests(account: Account = Depends(require_account)):
    try:
        return request_lifecycle.list_for_client(account)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.get("/provider", response_model=list[ServiceRequest])
@router.get("/garage", response_model=list[ServiceRequest], include_in_schema=False)
def list_provider_requests(account: Account = Depends(require_account)):
    try:
        return request_lifecycle.list_for_provider(account)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.get("/{request_id}", response_model=ServiceRequest)
def get_request(request_id: str, account: Account = Depends(require_account)):
    try:
        return request_lifecycle.get_request(request_id, account)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.get("/{request_id}/history", response_model=list[RequestStatusChange])
def request_history(request_id: str, account: Account = Depends(require_account)):
    try:
        return request_lifecycle.history(request_id, account)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.patch("/{request_id}/status", response_model=ServiceRequest)
def transition_request(
    request_id: str,
    request: StatusTransitionRequest,
    account: Account = Depends(require_account),
):
    try:
        return request_lifecycle.transition(request_id, account, request.status)
    except MecaLinkError as exc:
        raise_http_error(exc)


@router.patch("/{request_id}/cancel", response_model=ServiceRequest)
def cancel_request(request_id: str, account: Account = Depends(require_account)):
    try:
        return request_lifecycle.transition(request_id, account, "cancelled")
    except MecaLinkError as exc:
        raise_http_error(exc)
