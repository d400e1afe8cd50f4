# app.internal.integrations.pac

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError

from app.config import Config
from app.internal.integrations.base import BaseClient, ClientException
from app.internal.log import factory_logger, mask_secret
from app.models.pydantic.dgi.documento import DGIDocumento
from app.models.pydantic.dgi.respuesta import DGIRegistro, DGIRespuesta

pac_log = factory_logger('pac', file=True)

UNKNOWN_ERROR = 'Error desconocido del PAC'


class PacException(ClientException):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)


class TransportError(PacException):
    """Falla de red, timeout o respuesta HTTP no exitosa."""

    def __init__(self, *, status_code: int | None = None, body: str | None = None, **kwargs):
        self.status_code = status_code
        self.body = body
        super().__init__(**kwargs)


class SchemaError(PacException):
    """El documento o la respuesta no cumplen el esquema esperado."""


class ResponseClassification(str, Enum):
    AUTHORIZED = 'AUTHORIZED'
    REJECTED = 'REJECTED'
    ERROR = 'ERROR'


@dataclass(frozen=True)
class AuthorizationData:
    cufe: str
    url_cufe: str
    xml_fe: str


class PacClient(BaseClient):
    class Paths:
        recepcion: str = Config.pac_endpoint

    def __init__(
        self,
        api_key: str,
        subscription_key: str,
        host: str = Config.pac_base_url,
        success_codes: list[str] | None = None,
        timeout: int = Config.pac_timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        # El PAC no admite reintentos automáticos: una sola petición por envío.
        super().__init__(min_interval=0, transport=transport)
        self.host = host
        self.timeout = timeout
        self.success_codes = list(success_codes) if success_codes is not None else list(Config.pac_success_codes)
        self.headers = {
            'api-key': api_key,
            'ocp-apim-subscription-key': subscription_key,
            'Content-Type': 'application/json',
        }
        self._credential_hint = mask_secret(api_key)

    @classmethod
    def for_emitter(cls, emitter: Any, **kwargs) -> 'PacClient':
        return cls(emitter.pac_api_key, emitter.pac_subscription_key, **kwargs)

    async def submit(self, documento: DGIDocumento | dict) -> DGIRespuesta:
        """
        Envía el documento al servicio de recepción del PAC.

        Raises:
            SchemaError: Documento saliente o respuesta con forma inválida.
            TransportError: Falla de red, timeout o estado HTTP no exitoso.
        """
        url = self.build_url(self.host, self.Paths.recepcion)

        try:
            documento = DGIDocumento.model_validate(documento)
        except ValidationError as e:
            msg = f'{type(e)} {DGIDocumento.__name__} saliente\n{repr(e.errors(include_url=False))}'
            exception = SchemaError(url=url, msg=msg)
            pac_log.error(str(exception))
            raise exception

        payload = documento.to_payload()
        pac_log.info(f'Enviando documento {documento.dGen.dNroDF} al PAC, credencial {self._credential_hint}')

        try:
            response = await self.send('POST', self.headers, url, payload=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            exception = TransportError(url=url, payload=payload, msg=f'{type(e).__name__}: {e}')
            pac_log.error(str(exception))
            raise exception

        if not response.is_success:
            exception = TransportError(
                status_code=response.status_code,
                body=response.text,
                url=url,
                response={'status_code': response.status_code, 'content': response.text},
                msg=f'PAC respondió HTTP {response.status_code}',
            )
            pac_log.error(str(exception))
            raise exception

        try:
            respuesta_json = response.json()
        except ValueError:
            exception = SchemaError(
                url=url,
                response={'status_code': response.status_code, 'content': response.text},
                msg='Respuesta del PAC no es JSON',
            )
            pac_log.error(str(exception))
            raise exception

        try:
            respuesta = DGIRespuesta.model_validate(respuesta_json)
        except ValidationError as e:
            msg = f'{type(e)} {DGIRespuesta.__name__}, documento: {documento.dGen.dNroDF}'
            msg += f'\n{repr(e.errors(include_url=False))}'
            exception = SchemaError(url=url, response=respuesta_json, msg=msg)
            pac_log.error(str(exception))
            raise exception

        return respuesta

    def _successful_records(self, respuesta: DGIRespuesta) -> list[DGIRegistro]:
        return [registro for registro in respuesta.Data if registro.gResProc.dCodRes in self.success_codes]

    def classify_response(self, respuesta: DGIRespuesta) -> ResponseClassification:
        if self._successful_records(respuesta):
            return ResponseClassification.AUTHORIZED
        return ResponseClassification.REJECTED

    def extract_authorization_data(self, respuesta: DGIRespuesta) -> AuthorizationData | None:
        """CUFE, URL de consulta y XML firmado del primer registro exitoso; None si falta alguno."""
        registros = self._successful_records(respuesta)
        if not registros:
            return None

        registro = registros[0]
        cufe = registro.xProtFe[0].rProtFe.dCufe if registro.xProtFe else ''
        url_cufe = registro.urlCufe or registro.urlCufeAlternative
        xml_fe = registro.LoteFE[0].Xml if registro.LoteFE else ''
        if not cufe or not url_cufe or not xml_fe:
            return None
        return AuthorizationData(cufe=cufe, url_cufe=url_cufe, xml_fe=xml_fe)

    @staticmethod
    def extract_error_detail(respuesta: DGIRespuesta | dict | None) -> str:
        """Mensaje de error más específico disponible en la respuesta. Nunca lanza excepción."""
        try:
            if respuesta is None:
                return UNKNOWN_ERROR
            if isinstance(respuesta, dict):
                respuesta = DGIRespuesta.model_validate(respuesta)

            if respuesta.Errors:
                return _format_errors(respuesta.Errors)

            for registro in respuesta.Data:
                if registro.gResProc.dMsgRes:
                    return registro.gResProc.dMsgRes

            for registro in respuesta.Data:
                if registro.gResProcLote.dMsgResLote:
                    return registro.gResProcLote.dMsgResLote

            if respuesta.Status.Message:
                return respuesta.Status.Message
        except Exception as e:
            pac_log.warning(f'No fue posible extraer el detalle del error: {e}')

        return UNKNOWN_ERROR


def _format_errors(errors: Any) -> str:
    if isinstance(errors, str):
        return errors
    if isinstance(errors, list):
        mensajes = []
        for error in errors:
            if isinstance(error, dict):
                mensaje = error.get('Message') or error.get('message') or error.get('Description')
                mensajes.append(str(mensaje) if mensaje else json.dumps(error, ensure_ascii=False))
            else:
                mensajes.append(str(error))
        return '; '.join(mensajes)
    return json.dumps(errors, ensure_ascii=False, default=str)


if __name__ == '__main__':
    from asyncio import run

    async def main():
        client = PacClient('api-key', 'subscription-key')
        print(client.build_url(client.host, client.Paths.recepcion))

    run(main())
