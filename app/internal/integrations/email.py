# app.internal.integrations.email

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

import base64
from dataclasses import dataclass

import httpx

from app.config import Config
from app.internal.facturacion.exceptions import DownstreamError
from app.internal.integrations.base import BaseClient
from app.internal.log import factory_logger

email_log = factory_logger('email', file=True)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str


class ResendClient(BaseClient):
    class Paths:
        emails: str = '/emails'

    def __init__(
        self,
        api_key: str = Config.resend_api_key,
        sender: str = Config.email_from,
        host: str = 'https://api.resend.com',
        timeout: int = Config.email_timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(min_interval=0.1, transport=transport)
        self.host = host
        self.sender = sender
        self.timeout = timeout
        self.headers = {
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        }

    async def send_email(
        self,
        to: list[str],
        subject: str,
        html: str,
        attachments: list[Attachment] | None = None,
    ) -> str:
        """Envía el correo y retorna el id asignado por el proveedor."""
        url = self.build_url(self.host, self.Paths.emails)
        payload = {
            'from': self.sender,
            'to': to,
            'subject': subject,
            'html': html,
        }
        if attachments:
            payload['attachments'] = [
                {'filename': a.filename, 'content': base64.b64encode(a.content).decode('ascii')} for a in attachments
            ]

        try:
            response = await self.send('POST', self.headers, url, payload=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            exception = DownstreamError(url=url, msg=f'{type(e).__name__}: {e}')
            email_log.error(str(exception))
            raise exception

        try:
            response_json = response.json()
        except ValueError:
            response_json = {'content': response.text}

        if not response.is_success or not response_json.get('id'):
            exception = DownstreamError(
                url=url,
                response={'status_code': response.status_code, **response_json},
                msg=f'No fue posible enviar el correo a {", ".join(to)}',
            )
            email_log.error(str(exception))
            raise exception

        return response_json['id']
