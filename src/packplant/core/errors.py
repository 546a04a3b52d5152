from __future__ import annotations


class PackplantError(Exception):
    """Base class for failures surfaced to the operator as a row status plus a toast."""

    def __init__(self, message: str, *, entity_id: str | None = None, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        self.status = status


class InvalidState(PackplantError):
    """Operation forbidden by the order/pallet lifecycle. Raised before any commit."""


class ValidationFailed(PackplantError):
    """Capacity or input-shape violation; `message` is the validator's text."""


class NetworkError(PackplantError):
    pass


class ServerError(PackplantError):
    pass


class NotFound(PackplantError):
    """The referenced entity no longer exists (e.g. deleted by another operator)."""


def to_packplant_error(exc: BaseException, *, entity_id: str | None = None) -> PackplantError:
    """Convert a commit failure into the error taxonomy."""
    if isinstance(exc, PackplantError):
        if exc.entity_id is None:
            exc.entity_id = entity_id
        return exc

    text = str(exc) or exc.__class__.__name__
    if isinstance(exc, LookupError):
        err: PackplantError = NotFound(f"Registro no encontrado: {text}", entity_id=entity_id, status=404)
    elif isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        err = NetworkError(f"Error de conexión: {text}", entity_id=entity_id)
    else:
        err = ServerError(f"Error en el servidor: {text}", entity_id=entity_id, status=500)
    err.__cause__ = exc
    return err
