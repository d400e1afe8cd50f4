# app.routers.facturacion
if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from enum import Enum
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status

from app.internal.facturacion.exceptions import FacturacionError, NotFoundError, PreconditionError, ValidationError
from app.internal.facturacion.state_machine import InvoiceStateMachine
from app.internal.facturacion.workflow import procesar_pendientes
from app.internal.log import factory_logger
from app.internal.query.facturacion import customer_query, emitter_query
from app.models.db.facturacion import Customer, CustomerCreate, EmitterCreate, EmitterPublic
from app.models.pydantic.facturacion.invoice import (
    CreateInvoiceRequest,
    CreateInvoiceResponse,
    InvoiceStatusResponse,
    ResendEmailResponse,
)
from app.routers.base import CRUD

log_facturacion = factory_logger('facturacion', file=True)


class Tags(Enum):
    FACTURACION = 'Facturación electrónica DGI'


router = APIRouter(
    prefix='/dgi',
    tags=[Tags.FACTURACION],
    responses={404: {'description': 'No encontrado'}},
)

CRUD(router, 'emitter', 'emitters', emitter_query, EmitterPublic, EmitterCreate)
CRUD(router, 'customer', 'customers', customer_query, Customer, CustomerCreate)


def get_state_machine() -> InvoiceStateMachine:
    return InvoiceStateMachine()


StateMachineDep = Annotated[InvoiceStateMachine, Depends(get_state_machine)]


def http_error(e: FacturacionError) -> HTTPException:
    if isinstance(e, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, PreconditionError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(e, ValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=status_code, detail={'code': e.code, 'message': e.msg})


@router.post(
    '/invoices',
    status_code=status.HTTP_201_CREATED,
    response_model=CreateInvoiceResponse,
    summary='Crear factura electrónica',
    description='Registra la factura y la envía al PAC en segundo plano. '
    'Con una llave de idempotencia ya usada retorna la factura existente (200) sin reenviarla.',
)
async def create_invoice(
    request: CreateInvoiceRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    state_machine: StateMachineDep,
):
    try:
        invoice, created = await state_machine.create(request)
    except FacturacionError as e:
        raise http_error(e)

    if created:
        background_tasks.add_task(state_machine.process, invoice.id)
        message = 'Factura recibida, en proceso de autorización'
    else:
        response.status_code = status.HTTP_200_OK
        message = 'Solicitud repetida, se retorna la factura existente'

    return CreateInvoiceResponse(invoice_id=invoice.id, status=invoice.status, message=message)


@router.post(
    '/invoices/procesar-pendientes',
    status_code=status.HTTP_202_ACCEPTED,
    summary='Retomar facturas interrumpidas y reintentar artefactos y correos fallidos',
)
async def procesar_facturas_pendientes(background_tasks: BackgroundTasks, state_machine: StateMachineDep):
    background_tasks.add_task(procesar_pendientes, state_machine)
    return {'message': 'Recuperación programada'}


@router.get(
    '/invoices/{invoice_id}',
    response_model=InvoiceStatusResponse,
    summary='Estado de una factura',
)
async def get_invoice_status(invoice_id: UUID, state_machine: StateMachineDep):
    try:
        return await state_machine.get_status(invoice_id)
    except FacturacionError as e:
        raise http_error(e)


@router.delete(
    '/invoices/{invoice_id}',
    response_model=InvoiceStatusResponse,
    summary='Cancelar factura',
    description='Solo aplica a facturas que aún no se han enviado al PAC (RECEIVED o PREPARING).',
)
async def cancel_invoice(invoice_id: UUID, state_machine: StateMachineDep):
    try:
        await state_machine.cancel(invoice_id)
        return await state_machine.get_status(invoice_id)
    except FacturacionError as e:
        raise http_error(e)


@router.post(
    '/invoices/{invoice_id}/resend-email',
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ResendEmailResponse,
    summary='Reenviar correo de factura autorizada',
)
async def resend_invoice_email(invoice_id: UUID, background_tasks: BackgroundTasks, state_machine: StateMachineDep):
    try:
        invoice = await state_machine.ensure_resendable(invoice_id)
    except FacturacionError as e:
        raise http_error(e)

    log_facturacion.info(f'Reenvío de correo solicitado para la factura {invoice_id}')
    background_tasks.add_task(state_machine.resend_email, invoice_id)
    return ResendEmailResponse(
        invoice_id=invoice.id,
        email_status=invoice.email_status,
        message='Reenvío de correo programado',
    )
