class MecaLinkError(ValueError):
    """Base class for user-visible MecaLink errors."""


class InputValidationError(MecaLinkError):
    pass


class NotFoundError(MecaLinkError):
    pass


class ForbiddenError(MecaLinkError):
    pass


class InvalidTransitionError(MecaLinkError):
    def __init__(self, current_status: str, requested_status: str) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(f"Invalid status transition: {current_status} -> {requested_status}")


class UnavailableError(MecaLinkError):
    """A remote collaborator could not be reached."""
