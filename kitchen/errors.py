class KitchenError(Exception):
    code = "internal"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"status": self.code, "message": self.message}


class InvalidArgument(KitchenError):
    code = "invalid-argument"


class MissingIdentity(KitchenError):
    code = "missing-identity"


class Unauthenticated(KitchenError):
    code = "unauthenticated"


class InternalError(KitchenError):
    code = "internal"


class InvalidTransition(KitchenError):
    """Session gate asked to move along an edge it does not have."""

    code = "failed-precondition"
