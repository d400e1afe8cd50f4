# app.internal.facturacion.exceptions
from app.internal.integrations.base import ClientException


class FacturacionError(Exception):
    code = 'FACTURACION_ERROR'

    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)

    def __str__(self):
        return f'[{self.code}] {self.msg}'


class ValidationError(FacturacionError, ValueError):
    """Entrada mal formada para el constructor del documento o para la solicitud de creación."""

    code = 'VALIDATION_ERROR'


class NotFoundError(FacturacionError):
    code = 'NOT_FOUND'


class PreconditionError(FacturacionError):
    """La operación no aplica al estado actual de la factura. El estado no se modifica."""

    code = 'PRECONDITION_FAILED'


class InvalidStateError(PreconditionError):
    code = 'INVALID_STATE'

    def __init__(self, msg: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(msg)


class DownstreamError(ClientException):
    """Falla del almacenamiento de artefactos o del proveedor de correo."""
