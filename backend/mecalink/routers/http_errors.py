from fastapi import HTTPException

from mecalink.services.errors import (
    ForbiddenError,
    InvalidTransitionError,
    MecaLinkError,
    NotFoundError,
    UnavailableError,
)


def raise_http_error(exc: MecaLinkError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, ForbiddenError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, InvalidTransitionError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, UnavailableError):
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc
