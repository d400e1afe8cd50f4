# app.internal.facturacion.payload

"""
Construcción del documento de factura electrónica que se envía al PAC.

Funciones puras: no realizan I/O y, dado el mismo `issued_at`, producen siempre el mismo documento.
Los montos se calculan con Decimal y redondeo mitad hacia arriba; el ITBMS total es la suma de los
ITBMS de cada renglón ya redondeados, de modo que el documento cuadra renglón a renglón.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.config import Config
from app.internal.facturacion.exceptions import ValidationError
from app.internal.gen.utilities import format_money, format_quantity, pad_number, round_money, to_decimal
from app.models.pydantic.dgi.documento import DGIDocumento


DOC_KIND_CODES = {
    'invoice': '01',
    'import_invoice': '02',
    'export_invoice': '03',
    'credit_note': '04',
    'debit_note': '05',
    'zone_franca': '08',
    'reembolso': '09',
    'foreign_invoice': '10',
}

DEFAULT_COORDINATES = '8.992075,-79.517841'
DEFAULT_UBI_EMISOR = '8-8-8'
DEFAULT_UBI_RECEPTOR = '8-8-7'
DEFAULT_LOCALIDAD = 'PANAMA'
DEFAULT_CPBS_ABR = '85'
DEFAULT_CPBS_CMP = '8515'
DOCUMENT_NUMBER_WIDTH = 10

REQUIRED_EMITTER_FIELDS = ('name', 'company_code', 'ruc_tipo', 'ruc_numero', 'ruc_dv', 'suc_em', 'pto_fac_default')


@dataclass(frozen=True)
class Totals:
    net: Decimal
    tax: Decimal
    gross: Decimal
    line_taxes: tuple[Decimal, ...]


def _get(obj: Any, attr: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(attr, default)
    return getattr(obj, attr, default)


def format_document_number(number: int) -> str:
    if number < 1:
        raise ValidationError(f'Número de documento no válido: {number}')
    return pad_number(number, DOCUMENT_NUMBER_WIDTH)


def parse_tax_rate(rate: str | None) -> Decimal:
    """'07' -> Decimal('7')"""
    try:
        value = to_decimal(rate if rate not in (None, '') else '0')
    except ValueError:
        raise ValidationError(f'Tasa de ITBMS no numérica: {rate}')
    if not value.is_finite() or value < 0 or value > 100:
        raise ValidationError(f'Tasa de ITBMS fuera de rango: {rate}')
    return value


def line_tax(line_total: Decimal, rate: str | None) -> Decimal:
    return round_money(to_decimal(line_total) * parse_tax_rate(rate) / Decimal(100))


def compute_totals(items: Iterable[Any]) -> Totals:
    net = Decimal('0.00')
    line_taxes = []
    for item in items:
        line_total = round_money(_get(item, 'line_total'))
        net += line_total
        line_taxes.append(line_tax(line_total, _get(item, 'itbms_rate')))

    tax = sum(line_taxes, Decimal('0.00'))
    return Totals(net=round_money(net), tax=round_money(tax), gross=round_money(net + tax), line_taxes=tuple(line_taxes))


def validate_emitter(emitter: Any) -> None:
    if emitter is None:
        raise ValidationError('Emisor no resuelto')
    missing = [field for field in REQUIRED_EMITTER_FIELDS if not _get(emitter, field)]
    if missing:
        raise ValidationError(f'Emisor incompleto, faltan campos: {", ".join(missing)}')
    if _get(emitter, 'iamb') not in (1, 2):
        raise ValidationError(f'Ambiente del emisor no válido: {_get(emitter, "iamb")}')


def _validate_items(items: list[Any]) -> None:
    if not items:
        raise ValidationError('La factura debe tener al menos un renglón')
    for position, item in enumerate(items, start=1):
        description = _get(item, 'description')
        if not description or not str(description).strip():
            raise ValidationError(f'Renglón {position}: la descripción es obligatoria')
        for field in ('qty', 'unit_price', 'line_total'):
            value = _get(item, field)
            try:
                number = to_decimal(value) if value is not None else None
            except ValueError:
                number = None
            if number is None or not number.is_finite() or number <= 0:
                raise ValidationError(f'Renglón {position}: {field} debe ser mayor que cero')
        parse_tax_rate(_get(item, 'itbms_rate'))


def _validate_payments(payment_methods: list[Any]) -> None:
    if not payment_methods:
        raise ValidationError('La factura debe tener al menos una forma de pago')
    for position, payment in enumerate(payment_methods, start=1):
        if not _get(payment, 'method_code'):
            raise ValidationError(f'Forma de pago {position}: el código es obligatorio')
        amount = _get(payment, 'amount')
        if amount is None or to_decimal(amount) <= 0:
            raise ValidationError(f'Forma de pago {position}: el monto debe ser mayor que cero')


def _fecha_emision(issued_at: datetime) -> str:
    tz = ZoneInfo(Config.local_timezone)
    if issued_at.tzinfo is None:
        fecha = issued_at.replace(tzinfo=tz)
    else:
        fecha = issued_at.astimezone(tz)
    return fecha.isoformat(timespec='seconds')


def _notificacion(recipients: list[Any] | None) -> dict | None:
    if not recipients:
        return None
    return {
        'dChannels': [
            {
                'dChannelName': 'Email',
                'dReceivers': {
                    'dReceiversList': [
                        {'Email': _get(r, 'email'), 'Name': _get(r, 'name') or _get(r, 'email')} for r in recipients
                    ]
                },
            }
        ]
    }


def build_payload(
    emitter: Any,
    customer: Any,
    items: list[Any],
    payment_methods: list[Any],
    document_number: str,
    issued_at: datetime,
    doc_kind: str = 'invoice',
    pto_fac: str | None = None,
    notification_emails: list[Any] | None = None,
) -> DGIDocumento:
    """
    Construye el documento DGI a partir del emisor, el cliente y los renglones de la factura.

    Los renglones se numeran por su posición (001, 002, ...) sin importar el `line_no` del llamador.
    El total recibido (dTotRec) sale de las formas de pago y no interviene en los totales calculados.

    Raises:
        ValidationError: Si la entrada no permite construir un documento válido. No se construye nada parcial.
    """
    validate_emitter(emitter)
    if customer is None or not _get(customer, 'name'):
        raise ValidationError('Cliente no resuelto o sin nombre')
    if not document_number:
        raise ValidationError('El número de documento es obligatorio')
    if doc_kind not in DOC_KIND_CODES:
        raise ValidationError(f'Tipo de documento no soportado: {doc_kind}')
    _validate_items(items)
    _validate_payments(payment_methods)

    totals = compute_totals(items)
    total_received = sum((to_decimal(_get(pm, 'amount')) for pm in payment_methods), Decimal('0'))
    fecha = _fecha_emision(issued_at)
    iamb = _get(emitter, 'iamb')

    g_items = []
    for position, (item, tax) in enumerate(zip(items, totals.line_taxes), start=1):
        line_total = format_money(_get(item, 'line_total'))
        g_items.append(
            {
                'dSecItem': pad_number(position, 3),
                'dDescProd': str(_get(item, 'description')).strip(),
                'dCodProd': _get(item, 'sku'),
                'dCantCodInt': format_quantity(_get(item, 'qty')),
                'dCodCPBSabr': _get(item, 'cpbs_abr') or DEFAULT_CPBS_ABR,
                'dCodCPBScmp': _get(item, 'cpbs_cmp') or DEFAULT_CPBS_CMP,
                'gPrecios': {
                    'dPrUnit': format_money(_get(item, 'unit_price')),
                    'dPrUnitDesc': '0.00',
                    'dPrItem': line_total,
                    'dValTotItem': line_total,
                },
                'gITBMSItem': {
                    'dTasaITBMS': _get(item, 'itbms_rate') or '00',
                    'dValITBMS': format_money(tax),
                },
            }
        )

    documento = {
        'dGen': {
            'iAmb': iamb,
            'iTpEmis': _get(emitter, 'itpemis_default') or '01',
            'iDoc': DOC_KIND_CODES[doc_kind],
            'dNroDF': document_number,
            'dPtoFacDF': pto_fac or _get(emitter, 'pto_fac_default'),
            'dFechaEm': fecha,
            'dFechaSalida': fecha,
            'gEmis': {
                'dNombEm': _get(emitter, 'name'),
                'dSucEm': _get(emitter, 'suc_em'),
                'dCoordEm': _get(emitter, 'coordinates') or DEFAULT_COORDINATES,
                'dDirecEm': _get(emitter, 'address_line') or DEFAULT_LOCALIDAD,
                'gRucEmi': {
                    'dTipoRuc': _get(emitter, 'ruc_tipo'),
                    'dRuc': _get(emitter, 'ruc_numero'),
                    'dDV': _get(emitter, 'ruc_dv'),
                },
                'gUbiEm': {
                    'dCodUbi': _get(emitter, 'ubi_code') or DEFAULT_UBI_EMISOR,
                    'dCorreg': _get(emitter, 'corregimiento') or DEFAULT_LOCALIDAD,
                    'dDistr': _get(emitter, 'distrito') or DEFAULT_LOCALIDAD,
                    'dProv': _get(emitter, 'provincia') or DEFAULT_LOCALIDAD,
                },
                'dTfnEm': _get(emitter, 'phone'),
            },
            'gDatRec': {
                'iTipoRec': _get(customer, 'tipo_receptor') or '02',
                'dNombRec': _get(customer, 'name'),
                'dDirecRec': _get(customer, 'address_line') or DEFAULT_LOCALIDAD,
                'cPaisRec': 'PA',
                'gUbiRec': {
                    'dCodUbi': _get(customer, 'ubi_code') or DEFAULT_UBI_RECEPTOR,
                    'dCorreg': DEFAULT_LOCALIDAD,
                    'dDistr': DEFAULT_LOCALIDAD,
                    'dProv': DEFAULT_LOCALIDAD,
                },
                'dTfnRec': _get(customer, 'phone'),
                'dCorElectRec': _get(customer, 'email'),
            },
        },
        'gItem': g_items,
        'gTot': {
            'dTotNeto': format_money(totals.net),
            'dTotITBMS': format_money(totals.tax),
            'dTotISC': '0.00',
            'dTotGravado': '0.00',
            'dTotDesc': '0.00',
            'dVTot': format_money(totals.gross),
            'dTotRec': format_money(total_received),
            'iPzPag': len(payment_methods),
            'dNroItems': len(items),
            'dVTotItems': format_money(totals.net),
            'gFormaPago': [
                {'iFormaPago': _get(pm, 'method_code'), 'dVlrCuota': format_money(_get(pm, 'amount'))}
                for pm in payment_methods
            ],
        },
        'gExtra': {
            'gCompanyCode': _get(emitter, 'company_code'),
            'isValidationsOn': True,
            'isTestingOn': iamb == 2,
            'gNotification': _notificacion(notification_emails),
        },
        'dVerForm': '1.00',
    }

    try:
        return DGIDocumento.model_validate(documento)
    except PydanticValidationError as e:
        raise ValidationError(f'Documento DGI inválido: {e.errors(include_url=False)}')
