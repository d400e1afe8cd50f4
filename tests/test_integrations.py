"""
Pruebas de los clientes de almacenamiento y correo contra transportes simulados.
"""

import base64
import json

import httpx
import pytest

from app.internal.facturacion.exceptions import DownstreamError
from app.internal.integrations.email import Attachment, ResendClient
from app.internal.integrations.storage import StorageClient
from app.internal.log import mask_secret


class TestStorageClient:
    def make_client(self, handler) -> StorageClient:
        return StorageClient(
            host='https://proyecto.supabase.co/',
            api_key='service-key',
            bucket='invoices',
            transport=httpx.MockTransport(handler),
        )

    async def test_upload_returns_public_url(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={'Key': 'invoices/pdfs/abc/0000000001.pdf'})

        url = await self.make_client(handler).upload('pdfs/abc/0000000001.pdf', b'%PDF', 'application/pdf')

        assert url == 'https://proyecto.supabase.co/storage/v1/object/public/invoices/pdfs/abc/0000000001.pdf'
        request = requests[0]
        assert request.method == 'POST'
        assert str(request.url) == 'https://proyecto.supabase.co/storage/v1/object/invoices/pdfs/abc/0000000001.pdf'
        assert request.headers['authorization'] == 'Bearer service-key'
        assert request.headers['content-type'] == 'application/pdf'
        assert request.headers['x-upsert'] == 'true'
        assert request.content == b'%PDF'

    async def test_upload_failure(self):
        client = self.make_client(lambda request: httpx.Response(403, json={'error': 'Unauthorized'}))

        with pytest.raises(DownstreamError):
            await client.upload('xml/abc/0000000001.xml', b'<rFE/>', 'application/xml')

    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('Sin conexión', request=request)

        with pytest.raises(DownstreamError):
            await self.make_client(handler).upload('xml/abc/1.xml', b'<rFE/>', 'application/xml')

    async def test_download(self):
        client = self.make_client(lambda request: httpx.Response(200, content=b'%PDF-1.4'))

        assert await client.download('pdfs/abc/0000000001.pdf') == b'%PDF-1.4'

    async def test_download_missing_object(self):
        client = self.make_client(lambda request: httpx.Response(404, json={'error': 'not_found'}))

        with pytest.raises(DownstreamError):
            await client.download('pdfs/abc/0000000001.pdf')


class TestResendClient:
    def make_client(self, handler) -> ResendClient:
        return ResendClient(
            api_key='re_123',
            sender='facturas@zetterx.com',
            host='https://api.resend.test',
            transport=httpx.MockTransport(handler),
        )

    async def test_send_with_attachments(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={'id': 'msg_01'})

        message_id = await self.make_client(handler).send_email(
            to=['cliente@example.com'],
            subject='Factura Electrónica 0000000001 - Autorizada por DGI',
            html='<p>Factura</p>',
            attachments=[Attachment('Factura_0000000001.xml', b'<rFE/>', 'application/xml')],
        )

        assert message_id == 'msg_01'
        body = json.loads(requests[0].content)
        assert str(requests[0].url) == 'https://api.resend.test/emails'
        assert requests[0].headers['authorization'] == 'Bearer re_123'
        assert body['from'] == 'facturas@zetterx.com'
        assert body['to'] == ['cliente@example.com']
        assert body['attachments'][0]['filename'] == 'Factura_0000000001.xml'
        assert base64.b64decode(body['attachments'][0]['content']) == b'<rFE/>'

    async def test_provider_error(self):
        client = self.make_client(lambda request: httpx.Response(422, json={'message': 'Invalid `to` field'}))

        with pytest.raises(DownstreamError):
            await client.send_email(to=['no-valido'], subject='x', html='x')

    async def test_response_without_id(self):
        client = self.make_client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(DownstreamError):
            await client.send_email(to=['cliente@example.com'], subject='x', html='x')


def test_mask_secret():
    assert mask_secret('api-key-de-prueba-1234') == '******************1234'
    assert mask_secret('abc') == '***'
    assert mask_secret(None) == ''
