import logging
import os
import re
from typing import Any, Dict, List, Optional

import requests

from mecalink.models import Position, Provider, RequestLocation, ServiceRequest, VehicleInfo
from mecalink.services.errors import (
    ForbiddenError,
    InputValidationError,
    InvalidTransitionError,
    MecaLinkError,
    NotFoundError,
    UnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = os.getenv("MECALINK_API_URL", "http://localhost:8000")
DEFAULT_RADIUS_KM = 10.0
TRANSITION_PATTERN = re.compile(r"(\w+)\s*->\s*(\w+)")


def _detail_of(response: Any) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    detail = payload.get("detail") if isinstance(payload, dict) else payload
    if isinstance(detail, list) and detail:
        first = detail[0]
        location = ".".join(str(part) for part in first.get("loc", []) if part != "body")
        return f"{location}: {first.get('msg', 'invalid value')}" if location else str(first.get("msg"))
    return str(detail)


def error_from_response(response: Any) -> MecaLinkError:
    detail = _detail_of(response)
    code = response.status_code
    if code >= 500:
        return UnavailableError(f"MecaLink API error ({code}): {detail}")
    if code == 404:
        return NotFoundError(detail)
    if code in {401, 403}:
        return ForbiddenError(detail)
    if code == 409:
        match = TRANSITION_PATTERN.search(detail)
        if match:
            return InvalidTransitionError(match.group(1), match.group(2))
        return InvalidTransitionError("unknown", "unknown")
    return InputValidationError(detail)


class MecaLinkClient:
    """Thin HTTP client for the MecaLink API.

    Transport failures and 5xx answers surface as ``UnavailableError``; every
    other error status is mapped back onto the service's error types. Nothing
    is retried here.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token: Optional[str] = None,
        session: Any = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.account_id: Optional[str] = None
        self._account_token: Optional[str] = None
        self._session = session if session is not None else requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = self._session.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise UnavailableError(f"MecaLink API unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise error_from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s %s returned a non-JSON body", method, path)
            raise UnavailableError("MecaLink API returned a non-JSON response") from exc

    @property
    def identity(self) -> Optional[str]:
        """Who the current token speaks for; account-scoped cache entries are keyed on it."""
        if self.token is None:
            return None
        if self.token == self._account_token:
            return self.account_id
        return self.token

    def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = payload["access_token"]
        self.account_id = payload["account"]["id"]
        self._account_token = self.token
        return payload

    def nearby_providers(self, position: Position, radius_km: float = DEFAULT_RADIUS_KM) -> List[Provider]:
        rows = self._request(
            "GET",
            "/providers/nearby",
            params={"latitude": position.latitude, "longitude": position.longitude, "radius": radius_km},
        )
        return [Provider.model_validate(row) for row in rows]

    def get_provider(self, provider_id: str) -> Provider:
        return Provider.model_validate(self._request("GET", f"/providers/{provider_id}"))

    def create_request(
        self,
        provider_id: str,
        description: str,
        location: RequestLocation,
        vehicle_info: Optional[VehicleInfo] = None,
        urgency: str = "medium",
    ) -> ServiceRequest:
        body: Dict[str, Any] = {
            "provider_id": provider_id,
            "description": description,
            "location": location.model_dump(),
            "urgency": urgency,
        }
        if vehicle_info is not None:
            body["vehicle_info"] = vehicle_info.model_dump()
        return ServiceRequest.model_validate(self._request("POST", "/service-requests", json=body))

    def get_request(self, request_id: str) -> ServiceRequest:
        return ServiceRequest.model_validate(self._request("GET", f"/service-requests/{request_id}"))

    def list_requests(self, role: str) -> List[ServiceRequest]:
        if role not in {"client", "provider"}:
            raise InputValidationError("role: must be client or provider")
        rows = self._request("GET", f"/service-requests/{role}")
        return [ServiceRequest.model_validate(row) for row in rows]

    def transition_request(self, request_id: str, status: str) -> ServiceRequest:
        payload = self._request("PATCH", f"/service-requests/{request_id}/status", json={"status": status})
        return ServiceRequest.model_validate(payload)
