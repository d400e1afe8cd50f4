"""
Pruebas de la API HTTP de facturación.

Las tareas en segundo plano terminan antes de que ASGITransport entregue la respuesta,
por lo que después de un POST la factura ya fue procesada.
"""

import httpx
import pytest

from app.main import app
from app.models.db.session import get_async_session
from app.routers.facturacion import get_state_machine
from pac_responses import CUFE, URL_CUFE, rejected_response


@pytest.fixture
async def client(state_machine, session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_state_machine] = lambda: state_machine
    app.dependency_overrides[get_async_session] = override_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url='http://test') as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def invoice_body(emitter, customer) -> dict:
    return {
        'emitter_id': str(emitter.id),
        'customer_id': str(customer.id),
        'items': [
            {
                'line_no': 1,
                'description': 'Servicio de consultoría',
                'qty': '1',
                'unit_price': '100.00',
                'itbms_rate': '07',
                'line_total': '100.00',
            }
        ],
        'payment_methods': [{'method_code': '02', 'amount': '107.00'}],
    }


class TestInvoiceEndpoints:
    async def test_create_and_query(self, client, invoice_body):
        response = await client.post('/dgi/invoices', json=invoice_body)

        assert response.status_code == 201
        created = response.json()
        assert created['status'] == 'RECEIVED'

        response = await client.get(f'/dgi/invoices/{created["invoice_id"]}')

        assert response.status_code == 200
        status = response.json()
        assert status['status'] == 'AUTHORIZED'
        assert status['cufe'] == CUFE
        assert status['doc_number'] == '0000000001'
        assert status['email_status'] == 'SENT'
        assert status['error_message'] is None

    async def test_replay_returns_existing_invoice(self, client, invoice_body, pac):
        invoice_body['idempotency_key'] = 'pedido-3003'

        first = await client.post('/dgi/invoices', json=invoice_body)
        second = await client.post('/dgi/invoices', json=invoice_body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()['invoice_id'] == first.json()['invoice_id']
        assert len(pac.requests) == 1

    async def test_payment_mismatch_is_rejected(self, client, invoice_body, pac):
        invoice_body['payment_methods'] = [{'method_code': '02', 'amount': '100.00'}]

        response = await client.post('/dgi/invoices', json=invoice_body)

        assert response.status_code == 422
        assert pac.requests == []

    async def test_unknown_customer(self, client, invoice_body):
        invoice_body['customer_id'] = '00000000-0000-4000-8000-000000000000'

        response = await client.post('/dgi/invoices', json=invoice_body)

        assert response.status_code == 404
        assert response.json()['detail']['code'] == 'NOT_FOUND'

    async def test_rejected_invoice_exposes_error(self, client, invoice_body, pac):
        pac.respond_with(rejected_response(message='RUC inválido'))

        created = (await client.post('/dgi/invoices', json=invoice_body)).json()
        status = (await client.get(f'/dgi/invoices/{created["invoice_id"]}')).json()

        assert status['status'] == 'REJECTED'
        assert status['error_message'] == 'RUC inválido'
        assert status['cufe'] is None

    async def test_unknown_invoice(self, client):
        response = await client.get('/dgi/invoices/00000000-0000-4000-8000-000000000000')

        assert response.status_code == 404


class TestCancelEndpoint:
    async def test_cancel_pending_invoice(self, client, state_machine, make_request):
        invoice, _ = await state_machine.create(make_request())

        response = await client.delete(f'/dgi/invoices/{invoice.id}')

        assert response.status_code == 200
        assert response.json()['status'] == 'CANCELLED'

    async def test_cancel_authorized_invoice_conflicts(self, client, invoice_body):
        created = (await client.post('/dgi/invoices', json=invoice_body)).json()

        response = await client.delete(f'/dgi/invoices/{created["invoice_id"]}')

        assert response.status_code == 409
        assert response.json()['detail']['code'] == 'INVALID_STATE'
        status = (await client.get(f'/dgi/invoices/{created["invoice_id"]}')).json()
        assert status['status'] == 'AUTHORIZED'


class TestResendEndpoint:
    async def test_resend_authorized(self, client, invoice_body, email_client, pac):
        created = (await client.post('/dgi/invoices', json=invoice_body)).json()

        response = await client.post(f'/dgi/invoices/{created["invoice_id"]}/resend-email')

        assert response.status_code == 202
        assert len(email_client.sent) == 2
        assert CUFE in email_client.sent[-1]['html']
        assert URL_CUFE in email_client.sent[-1]['html']
        assert len(pac.requests) == 1
        status = (await client.get(f'/dgi/invoices/{created["invoice_id"]}')).json()
        assert status['status'] == 'AUTHORIZED'

    async def test_resend_rejected_conflicts(self, client, invoice_body, pac, email_client):
        pac.respond_with(rejected_response())
        created = (await client.post('/dgi/invoices', json=invoice_body)).json()

        response = await client.post(f'/dgi/invoices/{created["invoice_id"]}/resend-email')

        assert response.status_code == 409
        assert email_client.sent == []


class TestRecoveryEndpoint:
    async def test_schedules_recovery(self, client):
        response = await client.post('/dgi/invoices/procesar-pendientes')

        assert response.status_code == 202


class TestEmitterEndpoints:
    async def test_credentials_are_not_exposed(self, client):
        body = {
            'name': 'Otra Empresa S.A.',
            'company_code': 'OTRA',
            'ruc_tipo': '2',
            'ruc_numero': '8-123-456',
            'ruc_dv': '12',
            'iamb': 2,
            'pac_api_key': 'secreta',
            'pac_subscription_key': 'secreta-2',
        }

        response = await client.post('/dgi/emitter', json=body)

        assert response.status_code == 201
        assert 'pac_api_key' not in response.json()
        assert 'pac_subscription_key' not in response.json()

        listed = await client.get('/dgi/emitters')
        assert 'OTRA' in [emitter['company_code'] for emitter in listed.json()]

    async def test_invalid_environment(self, client):
        body = {
            'name': 'Otra Empresa S.A.',
            'company_code': 'OTRA',
            'ruc_tipo': '2',
            'ruc_numero': '8-123-456',
            'ruc_dv': '12',
            'iamb': 3,
            'pac_api_key': 'secreta',
            'pac_subscription_key': 'secreta-2',
        }

        response = await client.post('/dgi/emitter', json=body)

        assert response.status_code == 422

    async def test_deactivate_customer(self, client, customer):
        response = await client.delete(f'/dgi/customer/{customer.id}')

        assert response.status_code == 200
        assert response.json()['is_active'] is False
