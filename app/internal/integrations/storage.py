# app.internal.integrations.storage

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

import httpx

from app.config import Config
from app.internal.facturacion.exceptions import DownstreamError
from app.internal.integrations.base import BaseClient
from app.internal.log import factory_logger

storage_log = factory_logger('storage', file=True)


class StorageClient(BaseClient):
    """Cliente REST de Supabase Storage para los artefactos de las facturas."""

    class Paths:
        objeto: str = '/storage/v1/object'
        publico: str = '/storage/v1/object/public'

    def __init__(
        self,
        host: str = Config.storage_url,
        api_key: str = Config.storage_key,
        bucket: str = Config.storage_bucket,
        timeout: int = Config.storage_timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(min_interval=0.1, transport=transport)
        self.host = host
        self.bucket = bucket
        self.timeout = timeout
        self.headers = {
            'Authorization': f'Bearer {api_key}',
            'apikey': api_key,
        }

    def public_url(self, path: str) -> str:
        return self.build_url(self.host, self.Paths.publico, [self.bucket, path])

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Sube (o reemplaza) un objeto y retorna su URL pública."""
        url = self.build_url(self.host, self.Paths.objeto, [self.bucket, path])
        headers = {**self.headers, 'Content-Type': content_type, 'x-upsert': 'true'}

        try:
            response = await self.send('POST', headers, url, content=data, timeout=self.timeout)
        except httpx.HTTPError as e:
            exception = DownstreamError(url=url, msg=f'{type(e).__name__}: {e}')
            storage_log.error(str(exception))
            raise exception

        if not response.is_success:
            exception = DownstreamError(
                url=url,
                response={'status_code': response.status_code, 'content': response.text},
                msg=f'No fue posible subir {path}',
            )
            storage_log.error(str(exception))
            raise exception

        return self.public_url(path)

    async def download(self, path: str) -> bytes:
        url = self.build_url(self.host, self.Paths.objeto, [self.bucket, path])
        try:
            response = await self.send('GET', self.headers, url, timeout=self.timeout)
        except httpx.HTTPError as e:
            exception = DownstreamError(url=url, msg=f'{type(e).__name__}: {e}')
            storage_log.error(str(exception))
            raise exception

        if not response.is_success:
            exception = DownstreamError(
                url=url,
                response={'status_code': response.status_code, 'content': response.text},
                msg=f'No fue posible descargar {path}',
            )
            storage_log.error(str(exception))
            raise exception

        return response.content
