from dataclasses import dataclass
from typing import Literal, Optional

from mecalink.models import Account, ServiceRequest
from mecalink.services.errors import ForbiddenError, NotFoundError
from mecalink.services.provider_directory import ProviderDirectory

Action = Literal["create", "accept_or_reject", "complete", "cancel", "view"]

ACTION_FOR_STATUS: dict[str, Action] = {
    "accepted": "accept_or_reject",
    "rejected": "accept_or_reject",
    "completed": "complete",
    "cancelled": "cancel",
}


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Optional[str] = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise ForbiddenError(self.reason or "forbidden")


ALLOWED = AuthorizationDecision(allowed=True)


def denied(reason: str) -> AuthorizationDecision:
    return AuthorizationDecision(allowed=False, reason=reason)


class AuthorizationGate:
    """Decides whether an account may perform an action on a service request.

    Rules are checked in a fixed order and the first matching action wins.
    The caller's session is assumed to be valid already.
    """

    def __init__(self, directory: ProviderDirectory) -> None:
        self._directory = directory

    def _provider_id_for(self, actor: Account) -> Optional[str]:
        if actor.role != "provider":
            return None
        try:
            return self._directory.find_by_owner(actor.id).id
        except NotFoundError:
            return None

    def authorize(self, actor: Account, action: Action, target: Optional[ServiceRequest] = None) -> AuthorizationDecision:
        if action == "create":
            if actor.role == "client":
                return ALLOWED
            return denied("only clients can create requests")

        if target is None:
            return denied("no target request")

        if action in {"accept_or_reject", "complete"}:
            provider_id = self._provider_id_for(actor)
            if provider_id is not None and provider_id == target.provider_id:
                return ALLOWED
            return denied("not the assigned provider")

        if action == "cancel":
            if actor.role == "client" and actor.id == target.client_id:
                return ALLOWED
            return denied("not the requesting client")

        if action == "view":
            if actor.role == "client" and actor.id == target.client_id:
                return ALLOWED
            provider_id = self._provider_id_for(actor)
            if provider_id is not None and provider_id == target.provider_id:
                return ALLOWED
            return denied("not a party to this request")

        return denied(f"unknown action {action}")
