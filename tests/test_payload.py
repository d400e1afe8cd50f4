"""
Pruebas del constructor del documento DGI.

Valida:
- Totales con redondeo mitad hacia arriba y ITBMS como suma de renglones redondeados
- Numeración de renglones por posición
- Bandera de ambiente de pruebas
- Rechazo de entradas que no permiten construir un documento
- Validación de la solicitud de creación
"""

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.internal.facturacion.exceptions import ValidationError
from app.internal.facturacion.payload import (
    build_payload,
    compute_totals,
    format_document_number,
    line_tax,
    parse_tax_rate,
)
from app.models.pydantic.facturacion.invoice import CreateInvoiceRequest

ISSUED_AT = datetime(2024, 10, 15, 10, 30, 0, tzinfo=ZoneInfo('America/Panama'))


@pytest.fixture
def emitter_data() -> dict:
    return {
        'name': 'Zetterx Servicios S.A.',
        'company_code': 'ZETTERX',
        'ruc_tipo': '2',
        'ruc_numero': '155646463-2-2017',
        'ruc_dv': '86',
        'suc_em': '0001',
        'pto_fac_default': '001',
        'iamb': 2,
        'itpemis_default': '01',
    }


@pytest.fixture
def customer_data() -> dict:
    return {'name': 'Cliente Contado', 'email': 'cliente@example.com', 'tipo_receptor': '02'}


def item(line_no: int = 1, line_total: str = '100.00', rate: str = '07', qty: str = '1', **extra) -> dict:
    return {
        'line_no': line_no,
        'description': f'Producto {line_no}',
        'qty': Decimal(qty),
        'unit_price': Decimal(line_total) / Decimal(qty),
        'itbms_rate': rate,
        'line_total': Decimal(line_total),
        **extra,
    }


def payment(amount: str, code: str = '02') -> dict:
    return {'method_code': code, 'amount': Decimal(amount)}


# =============================================================================
# Totales
# =============================================================================


class TestTotals:
    def test_single_line_with_seven_percent(self):
        totals = compute_totals([item()])

        assert totals.net == Decimal('100.00')
        assert totals.tax == Decimal('7.00')
        assert totals.gross == Decimal('107.00')

    def test_tax_is_sum_of_rounded_line_taxes(self):
        # 10.05 * 7% = 0.7035 por renglón; redondeando el total serían 1.41
        totals = compute_totals([item(1, '10.05'), item(2, '10.05')])

        assert totals.line_taxes == (Decimal('0.70'), Decimal('0.70'))
        assert totals.tax == Decimal('1.40')
        assert totals.gross == Decimal('21.50')

    def test_rounding_is_half_up(self):
        assert line_tax(Decimal('1.25'), '10') == Decimal('0.13')
        assert line_tax(Decimal('0.50'), '00') == Decimal('0.00')

    def test_tax_rate_is_parsed_as_percent(self):
        assert parse_tax_rate('07') == Decimal('7')
        assert parse_tax_rate('') == Decimal('0')

    @pytest.mark.parametrize('rate', ['x7', '-1', '150'])
    def test_invalid_tax_rate(self, rate):
        with pytest.raises(ValidationError):
            parse_tax_rate(rate)

    def test_document_number_is_zero_padded(self):
        assert format_document_number(1) == '0000000001'
        assert format_document_number(1234) == '0000001234'
        with pytest.raises(ValidationError):
            format_document_number(0)


# =============================================================================
# Documento
# =============================================================================


class TestBuildPayload:
    def test_happy_path(self, emitter_data, customer_data):
        documento = build_payload(
            emitter_data, customer_data, [item()], [payment('107.00')], '0000000001', ISSUED_AT
        )

        assert documento.gTot.dTotNeto == '100.00'
        assert documento.gTot.dTotITBMS == '7.00'
        assert documento.gTot.dVTot == '107.00'
        assert documento.gTot.dTotRec == '107.00'
        assert documento.gTot.dNroItems == 1
        assert documento.to_payload()['gTot']['dTotISC'] == '0.00'
        assert documento.gItem[0].dSecItem == '001'
        assert documento.gItem[0].gITBMSItem.dValITBMS == '7.00'
        assert documento.gItem[0].dCantCodInt == '1'
        assert documento.dGen.iDoc == '01'
        assert documento.dGen.dNroDF == '0000000001'
        assert documento.dGen.dPtoFacDF == '001'
        assert documento.dGen.dFechaEm == '2024-10-15T10:30:00-05:00'
        assert documento.gExtra.gCompanyCode == 'ZETTERX'

    def test_lines_are_renumbered_by_position(self, emitter_data, customer_data):
        items = [item(5, '10.00'), item(9, '20.00'), item(42, '30.00')]

        documento = build_payload(emitter_data, customer_data, items, [payment('64.20')], '0000000007', ISSUED_AT)

        assert [g.dSecItem for g in documento.gItem] == ['001', '002', '003']
        assert documento.gTot.dVTot == '64.20'

    def test_testing_flag_follows_environment(self, emitter_data, customer_data):
        documento = build_payload(emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT)
        assert documento.gExtra.isTestingOn is True

        emitter_data['iamb'] = 1
        documento = build_payload(emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT)
        assert documento.gExtra.isTestingOn is False
        assert documento.dGen.iAmb == 1

    def test_total_received_comes_from_payments(self, emitter_data, customer_data):
        payments = [payment('100.00', '01'), payment('7.00', '02')]

        documento = build_payload(emitter_data, customer_data, [item()], payments, '1', ISSUED_AT)

        assert documento.gTot.iPzPag == 2
        assert documento.gTot.dTotRec == '107.00'
        assert [f.dVlrCuota for f in documento.gTot.gFormaPago] == ['100.00', '7.00']

    def test_naive_issue_date_is_local(self, emitter_data, customer_data):
        documento = build_payload(
            emitter_data, customer_data, [item()], [payment('107.00')], '1', datetime(2024, 1, 2, 8, 0, 0)
        )

        assert documento.dGen.dFechaEm == '2024-01-02T08:00:00-05:00'

    def test_same_input_same_document(self, emitter_data, customer_data):
        args = (emitter_data, customer_data, [item()], [payment('107.00')], '0000000001', ISSUED_AT)

        assert build_payload(*args).to_payload() == build_payload(*args).to_payload()

    def test_optional_fields_are_omitted(self, emitter_data, customer_data):
        payload = build_payload(
            emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT
        ).to_payload()

        assert 'dCodProd' not in payload['gItem'][0]
        assert 'gNotification' not in payload['gExtra']

    def test_notification_recipients(self, emitter_data, customer_data):
        documento = build_payload(
            emitter_data,
            customer_data,
            [item()],
            [payment('107.00')],
            '1',
            ISSUED_AT,
            notification_emails=[{'email': 'contabilidad@example.com', 'name': 'Contabilidad'}],
        )

        receivers = documento.gExtra.gNotification.dChannels[0].dReceivers.dReceiversList
        assert receivers[0].Email == 'contabilidad@example.com'
        assert receivers[0].Name == 'Contabilidad'

    def test_credit_note_code(self, emitter_data, customer_data):
        documento = build_payload(
            emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT, doc_kind='credit_note'
        )

        assert documento.dGen.iDoc == '04'


class TestBuildPayloadValidation:
    def test_no_items(self, emitter_data, customer_data):
        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [], [payment('1.00')], '1', ISSUED_AT)

    def test_no_payments(self, emitter_data, customer_data):
        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [item()], [], '1', ISSUED_AT)

    @pytest.mark.parametrize('field', ['qty', 'unit_price', 'line_total'])
    def test_non_positive_amounts(self, emitter_data, customer_data, field):
        bad = item()
        bad[field] = Decimal('0')

        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [bad], [payment('107.00')], '1', ISSUED_AT)

    def test_blank_description(self, emitter_data, customer_data):
        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [item(description='  ')], [payment('107.00')], '1', ISSUED_AT)

    def test_incomplete_emitter(self, emitter_data, customer_data):
        emitter_data['ruc_dv'] = ''

        with pytest.raises(ValidationError, match='ruc_dv'):
            build_payload(emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT)

    def test_invalid_environment(self, emitter_data, customer_data):
        emitter_data['iamb'] = 3

        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT)

    def test_unknown_document_kind(self, emitter_data, customer_data):
        with pytest.raises(ValidationError):
            build_payload(emitter_data, customer_data, [item()], [payment('107.00')], '1', ISSUED_AT, doc_kind='recibo')

    def test_missing_customer(self, emitter_data):
        with pytest.raises(ValidationError):
            build_payload(emitter_data, None, [item()], [payment('107.00')], '1', ISSUED_AT)


# =============================================================================
# Solicitud de creación
# =============================================================================


class TestCreateInvoiceRequest:
    def base(self, **overrides) -> dict:
        data = {
            'emitter_id': '6f1c2a52-8f3e-4a61-9d1a-1b2c3d4e5f60',
            'customer_id': '0a9b8c7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d',
            'items': [item()],
            'payment_methods': [payment('107.00')],
        }
        data.update(overrides)
        return data

    def test_valid_request(self):
        request = CreateInvoiceRequest.model_validate(self.base(idempotency_key='pedido-1001'))

        assert request.doc_kind == 'invoice'
        assert request.idempotency_key == 'pedido-1001'

    def test_payments_must_match_total(self):
        with pytest.raises(PydanticValidationError, match='formas de pago'):
            CreateInvoiceRequest.model_validate(self.base(payment_methods=[payment('100.00')]))

    def test_line_numbers_must_be_unique(self):
        items = [item(1, '50.00'), item(1, '50.00')]

        with pytest.raises(PydanticValidationError, match='line_no'):
            CreateInvoiceRequest.model_validate(self.base(items=items))

    def test_tax_rate_format(self):
        with pytest.raises(PydanticValidationError):
            CreateInvoiceRequest.model_validate(self.base(items=[item(rate='7')], payment_methods=[payment('107.00')]))

    def test_items_required(self):
        with pytest.raises(PydanticValidationError):
            CreateInvoiceRequest.model_validate(self.base(items=[]))
