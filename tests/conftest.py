"""
Fixtures de la suite de facturación electrónica.

Provee:
- Base de datos SQLite temporal (aiosqlite) por prueba, con las tablas de facturación
- Emisor y cliente de prueba
- PAC simulado con httpx.MockTransport y dobles de almacenamiento y correo
- Orquestador de facturas conectado a todo lo anterior
"""

import os
import tempfile

# Antes de importar la aplicación: la configuración se lee una sola vez
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite://'
os.environ['LOGS_DIR'] = tempfile.mkdtemp(prefix='facturacion-logs-')
os.environ['ENVIRONMENT'] = 'development'

import json
from datetime import timedelta
from decimal import Decimal
from typing import Callable
from uuid import UUID

import httpx
import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.internal.facturacion.artifacts import ArtifactPipeline
from app.internal.facturacion.exceptions import DownstreamError
from app.internal.facturacion.notifications import NotificationDispatcher
from app.internal.facturacion.state_machine import InvoiceStateMachine
from app.internal.gen.utilities import DateTz
from app.internal.integrations.pac import PacClient
from app.models.db import facturacion  # noqa: F401
from app.models.db.facturacion import Customer, Emitter, Invoice
from app.models.pydantic.facturacion.invoice import CreateInvoiceRequest
from pac_responses import authorized_response


# =============================================================================
# Dobles de servicios externos
# =============================================================================


class FakePac:
    """PAC simulado: registra cada petición y responde con `responder`."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response] | None = None):
        self.requests: list[httpx.Request] = []
        self.responder = responder or (lambda request: httpx.Response(200, json=authorized_response()))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def respond_with(self, body: dict, status_code: int = 200) -> None:
        self.responder = lambda request: httpx.Response(status_code, json=body)

    def client_for(self, emitter: Emitter) -> PacClient:
        return PacClient.for_emitter(emitter, transport=httpx.MockTransport(self.handler))

    @property
    def documents(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise DownstreamError(url=path, msg=f'No fue posible subir {path}')
        self.objects[path] = data
        return f'https://storage.test/invoices/{path}'

    async def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise DownstreamError(url=path, msg=f'No fue posible descargar {path}')
        return self.objects[path]


class FakeEmailClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send_email(self, to: list[str], subject: str, html: str, attachments=None) -> str:
        if self.fail:
            raise DownstreamError(msg=f'No fue posible enviar el correo a {", ".join(to)}')
        self.sent.append({'to': to, 'subject': subject, 'html': html, 'attachments': attachments or []})
        return f'email-{len(self.sent)}'


async def fake_renderer(html: str) -> bytes:
    return b'%PDF-1.4 factura de prueba'


# =============================================================================
# Base de datos
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path / "facturacion.db"}')
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def emitter(session_factory) -> Emitter:
    emitter = Emitter(
        name='Zetterx Servicios S.A.',
        company_code='ZETTERX',
        ruc_tipo='2',
        ruc_numero='155646463-2-2017',
        ruc_dv='86',
        suc_em='0001',
        pto_fac_default='001',
        iamb=2,
        email='ventas@zetterx.com',
        phone='507-6000-0000',
        address_line='Calle 50, Ciudad de Panamá',
        pac_api_key='api-key-de-prueba-1234',
        pac_subscription_key='subscription-key-5678',
    )
    async with session_factory() as session:
        session.add(emitter)
        await session.commit()
        await session.refresh(emitter)
    return emitter


@pytest.fixture
async def customer(session_factory, emitter) -> Customer:
    customer = Customer(
        emitter_id=emitter.id,
        name='Cliente Contado',
        email='cliente@example.com',
        phone='507-6111-1111',
        tax_id='8-888-888',
    )
    async with session_factory() as session:
        session.add(customer)
        await session.commit()
        await session.refresh(customer)
    return customer


# =============================================================================
# Servicios
# =============================================================================


@pytest.fixture
def pac() -> FakePac:
    return FakePac()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def email_client() -> FakeEmailClient:
    return FakeEmailClient()


@pytest.fixture
def state_machine(session_factory, pac, storage, email_client) -> InvoiceStateMachine:
    return InvoiceStateMachine(
        session_factory,
        pac_client_factory=pac.client_for,
        artifacts=ArtifactPipeline(session_factory, storage=storage, renderer=fake_renderer),
        notifications=NotificationDispatcher(session_factory, email_client=email_client),
    )


@pytest.fixture
def make_request(emitter, customer) -> Callable[..., CreateInvoiceRequest]:
    """Solicitud válida: un renglón de 100.00 con ITBMS 7%, pagado con 107.00."""

    def _make_request(**overrides) -> CreateInvoiceRequest:
        data = {
            'emitter_id': emitter.id,
            'customer_id': customer.id,
            'items': [
                {
                    'line_no': 1,
                    'sku': 'SERV-001',
                    'description': 'Servicio de consultoría',
                    'qty': Decimal('1'),
                    'unit_price': Decimal('100.00'),
                    'itbms_rate': '07',
                    'line_total': Decimal('100.00'),
                }
            ],
            'payment_methods': [{'method_code': '02', 'amount': Decimal('107.00')}],
        }
        data.update(overrides)
        return CreateInvoiceRequest.model_validate(data)

    return _make_request


@pytest.fixture
def get_invoice(session_factory) -> Callable:
    async def _get_invoice(invoice_id: UUID) -> Invoice:
        async with session_factory() as session:
            return await session.get(Invoice, invoice_id)

    return _get_invoice


@pytest.fixture
def age_invoice(session_factory) -> Callable:
    """Simula una factura que no se ha tocado en los últimos minutos."""

    async def _age_invoice(invoice_id: UUID, minutes: int = 60) -> None:
        async with session_factory() as session:
            await session.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)  # type: ignore
                .values(updated_at=DateTz.local() - timedelta(minutes=minutes))
            )
            await session.commit()

    return _age_invoice
