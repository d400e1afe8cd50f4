# app.internal.facturacion.state_machine

"""
Orquestador del ciclo de vida de una factura electrónica.

RECEIVED -> PREPARING -> SENDING_TO_PAC -> AUTHORIZED | REJECTED | ERROR
RECEIVED | PREPARING -> CANCELLED

Cada transición es un compare-and-set sobre el estado actual, así que un estado terminal no cambia
y una factura no se envía dos veces al PAC. La generación de artefactos y el correo ocurren después
de persistir la autorización y sus fallas no modifican los datos fiscales.
"""

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.internal.facturacion.artifacts import ArtifactPipeline
from app.internal.facturacion.exceptions import (
    FacturacionError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from app.internal.facturacion.notifications import NotificationDispatcher, SendResult
from app.internal.facturacion.payload import build_payload, compute_totals, format_document_number
from app.internal.facturacion.steps import Step, StepRecorder
from app.internal.gen.utilities import DateTz, round_money
from app.internal.integrations.pac import PacClient, PacException, ResponseClassification, TransportError
from app.internal.log import factory_logger
from app.internal.query.facturacion import (
    api_call_query,
    customer_query,
    emitter_query,
    invoice_query,
    series_query,
)
from app.models.db.facturacion import (
    ApiCallStatus,
    DocumentType,
    Emitter,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    PaymentMethod,
)
from app.models.db.session import AsyncSessionLocal
from app.models.pydantic.dgi.documento import DGIDocumento
from app.models.pydantic.dgi.respuesta import DGIRespuesta
from app.models.pydantic.facturacion.invoice import CreateInvoiceRequest, InvoiceStatusResponse

facturacion_log = factory_logger('facturacion', file=True)

MAX_ALLOCATION_ATTEMPTS = 3
INTERRUPTED_SUBMISSION = (
    'Envío al PAC interrumpido sin respuesta registrada. Verificar el documento en el PAC antes de reemitir.'
)
MISSING_AUTHORIZATION_DATA = 'Respuesta exitosa del PAC sin CUFE, URL de consulta o XML firmado'


class InvoiceStateMachine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        pac_client_factory: Callable[[Emitter], PacClient] = PacClient.for_emitter,
        artifacts: ArtifactPipeline | None = None,
        notifications: NotificationDispatcher | None = None,
    ):
        self.session_factory = session_factory
        self.pac_client_factory = pac_client_factory
        self.artifacts = artifacts or ArtifactPipeline(session_factory)
        self.notifications = notifications or NotificationDispatcher(session_factory)
        self.steps = StepRecorder(session_factory)

    async def _get(self, invoice_id: UUID) -> Invoice:
        async with self.session_factory() as session:
            invoice = await invoice_query.get(session, invoice_id)
        if invoice is None:
            raise NotFoundError(f'Factura {invoice_id} no encontrada')
        return invoice

    async def _transition(
        self,
        invoice_id: UUID,
        from_statuses: tuple[InvoiceStatus, ...],
        to_status: InvoiceStatus,
        **values: Any,
    ) -> bool:
        async with self.session_factory() as session:
            return await invoice_query.transition(session, invoice_id, from_statuses, to_status, **values)

    # region creación
    async def create(self, request: CreateInvoiceRequest) -> tuple[Invoice, bool]:
        """
        Registra la factura en RECEIVED. Si la llave de idempotencia ya existe retorna la factura
        existente sin modificarla.

        Returns:
            (factura, creada): creada es False cuando la solicitud es una repetición.
        """
        async with self.session_factory() as session:
            if request.idempotency_key:
                existing = await invoice_query.get_by_idempotency_key(session, request.idempotency_key)
                if existing:
                    facturacion_log.info(f'Solicitud repetida, llave {request.idempotency_key} -> factura {existing.id}')
                    return existing, False

            emitter = await emitter_query.get(session, request.emitter_id)
            if emitter is None or not emitter.is_active:
                raise NotFoundError(f'Emisor {request.emitter_id} no encontrado o inactivo')
            customer = await customer_query.get_for_emitter(session, request.customer_id, request.emitter_id)
            if customer is None or not customer.is_active:
                raise NotFoundError(f'Cliente {request.customer_id} no encontrado o inactivo para el emisor')

            # Valores planos: un rollback expira las instancias de la sesión
            emitter_id = emitter.id
            customer_id = customer.id
            doc_kind = DocumentType(request.doc_kind).value
            pto_fac = request.pto_fac or emitter.pto_fac_default
            totals = compute_totals(request.items)
            total_received = round_money(sum((pm.amount for pm in request.payment_methods), Decimal('0')))
            notification_emails = (
                [recipient.model_dump() for recipient in request.notification_emails]
                if request.notification_emails
                else None
            )

            for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
                try:
                    number = await series_query.next_number(session, emitter_id, doc_kind, pto_fac)
                    invoice = Invoice(
                        emitter_id=emitter_id,
                        customer_id=customer_id,
                        doc_kind=doc_kind,
                        d_nrodf=format_document_number(number),
                        d_ptofacdf=pto_fac,
                        subtotal=totals.net,
                        itbms_amount=totals.tax,
                        total_amount=totals.gross,
                        total_received=total_received,
                        idempotency_key=request.idempotency_key,
                        notification_emails=notification_emails,
                    )
                    items = [
                        InvoiceItem(
                            invoice_id=invoice.id,
                            line_no=item.line_no,
                            sku=item.sku,
                            description=item.description.strip(),
                            qty=item.qty,
                            unit_price=item.unit_price,
                            itbms_rate=item.itbms_rate,
                            cpbs_abr=item.cpbs_abr,
                            cpbs_cmp=item.cpbs_cmp,
                            line_total=round_money(item.line_total),
                        )
                        for item in request.items
                    ]
                    payments = [
                        PaymentMethod(invoice_id=invoice.id, method_code=pm.method_code, amount=round_money(pm.amount))
                        for pm in request.payment_methods
                    ]
                    invoice = await invoice_query.insert_with_lines(session, invoice, items, payments)
                except IntegrityError:
                    await session.rollback()
                    if request.idempotency_key:
                        existing = await invoice_query.get_by_idempotency_key(session, request.idempotency_key)
                        if existing:
                            facturacion_log.info(
                                f'Llave {request.idempotency_key} registrada en paralelo -> factura {existing.id}'
                            )
                            return existing, False
                    facturacion_log.warning(f'Conflicto al asignar número de documento, intento {attempt}')
                    continue

                facturacion_log.info(f'Factura {invoice.id} registrada, documento {invoice.d_nrodf}')
                return invoice, True

        raise FacturacionError('No fue posible asignar un número de documento a la factura')

    async def submit(self, request: CreateInvoiceRequest) -> tuple[Invoice, bool]:
        """Registra y procesa. Una repetición retorna la factura existente sin reenviarla."""
        invoice, created = await self.create(request)
        if created:
            invoice = await self.process(invoice.id)
        return invoice, created

    # endregion

    # region procesamiento
    async def process(self, invoice_id: UUID) -> Invoice:
        invoice = await self._get(invoice_id)
        if invoice.status not in (InvoiceStatus.RECEIVED, InvoiceStatus.PREPARING):
            facturacion_log.info(f'Factura {invoice_id} en estado {invoice.status}, no se procesa')
            return invoice

        if not await self._transition(
            invoice_id, (InvoiceStatus.RECEIVED, InvoiceStatus.PREPARING), InvoiceStatus.PREPARING
        ):
            return await self._get(invoice_id)

        try:
            async with self.steps.step(invoice_id, Step.BUILD) as step:
                async with self.session_factory() as session:
                    emitter = await emitter_query.get(session, invoice.emitter_id)
                    customer = await customer_query.get(session, invoice.customer_id)
                    items = await invoice_query.get_items(session, invoice_id)
                    payments = await invoice_query.get_payment_methods(session, invoice_id)

                documento = build_payload(
                    emitter,
                    customer,
                    items,
                    payments,
                    document_number=invoice.d_nrodf,
                    issued_at=invoice.issued_at,
                    doc_kind=invoice.doc_kind,
                    pto_fac=invoice.d_ptofacdf,
                    notification_emails=invoice.notification_emails,
                )
                step.detail = f'Documento {invoice.d_nrodf}, total {documento.gTot.dVTot}'
        except ValidationError as e:
            await self._transition(invoice_id, (InvoiceStatus.PREPARING,), InvoiceStatus.ERROR, error_message=e.msg)
            return await self._get(invoice_id)

        if not await self._transition(invoice_id, (InvoiceStatus.PREPARING,), InvoiceStatus.SENDING_TO_PAC):
            return await self._get(invoice_id)

        return await self._send(invoice_id, emitter, documento)

    async def _send(self, invoice_id: UUID, emitter: Emitter, documento: DGIDocumento) -> Invoice:
        client = self.pac_client_factory(emitter)
        async with self.session_factory() as session:
            api_call = await api_call_query.start(
                session,
                invoice_id,
                endpoint=client.build_url(client.host, client.Paths.recepcion),
                used_credential=emitter.company_code,
                request_payload=documento.to_payload(),
            )

        try:
            async with self.steps.step(invoice_id, Step.SUBMIT):
                respuesta = await client.submit(documento)
        except PacException as e:
            detail = e.msg or type(e).__name__
            async with self.session_factory() as session:
                await api_call_query.finish(
                    session,
                    api_call.id,
                    ApiCallStatus.ERROR,
                    response_payload=e.response,
                    http_status=e.status_code if isinstance(e, TransportError) else None,
                    error_msg=detail,
                )
            await self._transition(
                invoice_id, (InvoiceStatus.SENDING_TO_PAC,), InvoiceStatus.ERROR, error_message=detail
            )
            return await self._get(invoice_id)
        except Exception as e:
            facturacion_log.exception(f'❌ Error inesperado enviando la factura {invoice_id} al PAC')
            detail = f'{type(e).__name__}: {e}'
            async with self.session_factory() as session:
                await api_call_query.finish(session, api_call.id, ApiCallStatus.ERROR, error_msg=detail)
            await self._transition(
                invoice_id, (InvoiceStatus.SENDING_TO_PAC,), InvoiceStatus.ERROR, error_message=detail
            )
            return await self._get(invoice_id)

        raw = respuesta.model_dump(mode='json')
        async with self.session_factory() as session:
            await api_call_query.finish(session, api_call.id, ApiCallStatus.SUCCESS, response_payload=raw, http_status=200)

        return await self._settle(invoice_id, client, respuesta, raw)

    async def _settle(self, invoice_id: UUID, client: PacClient, respuesta: DGIRespuesta, raw: dict) -> Invoice:
        async with self.steps.step(invoice_id, Step.CLASSIFY) as step:
            classification = client.classify_response(respuesta)
            authorization = None
            detail = None
            if classification == ResponseClassification.AUTHORIZED:
                authorization = client.extract_authorization_data(respuesta)
                if authorization is None:
                    classification = ResponseClassification.REJECTED
                    detail = MISSING_AUTHORIZATION_DATA

            if authorization is not None:
                authorized = await self._transition(
                    invoice_id,
                    (InvoiceStatus.SENDING_TO_PAC,),
                    InvoiceStatus.AUTHORIZED,
                    cufe=authorization.cufe,
                    url_cufe=authorization.url_cufe,
                    xml_fe=authorization.xml_fe,
                    xml_response=raw,
                    authorized_at=DateTz.local(),
                    error_message=None,
                )
                step.detail = f'AUTHORIZED {authorization.cufe}'
            else:
                authorized = False
                detail = detail or client.extract_error_detail(respuesta)
                await self._transition(
                    invoice_id,
                    (InvoiceStatus.SENDING_TO_PAC,),
                    InvoiceStatus.REJECTED,
                    xml_response=raw,
                    error_message=detail,
                )
                step.detail = f'REJECTED {detail}'

        if authorized:
            facturacion_log.info(f'✅ Factura {invoice_id} autorizada por la DGI, CUFE {authorization.cufe}')
            await self.run_downstream(invoice_id)
        elif detail:
            facturacion_log.warning(f'Factura {invoice_id} rechazada: {detail}')
        return await self._get(invoice_id)

    # endregion

    # region artefactos y correo
    async def run_downstream(self, invoice_id: UUID) -> None:
        """Artefactos y correo de una factura autorizada. Las fallas quedan registradas y no se propagan."""
        await self.generate_artifacts(invoice_id)
        await self.notify(invoice_id)

    async def generate_artifacts(self, invoice_id: UUID) -> None:
        try:
            async with self.steps.step(invoice_id, Step.ARTIFACTS) as step:
                result = await self.artifacts.generate(invoice_id)
                if result is not None:
                    step.detail = f'pdf: {result.pdf.url or result.pdf.error}; xml: {result.xml.url or result.xml.error}'
        except Exception as e:
            facturacion_log.error(f'❌ Artefactos de la factura {invoice_id} no generados: {e}')

    async def notify(self, invoice_id: UUID) -> list[SendResult]:
        try:
            invoice = await self._get(invoice_id)
            attachments = await self.artifacts.load_attachments(invoice)
            async with self.steps.step(invoice_id, Step.NOTIFY) as step:
                results = await self.notifications.dispatch(invoice_id, attachments)
                step.detail = f'{sum(1 for r in results if r.success)} de {len(results)} correos enviados'
            return results
        except Exception as e:
            facturacion_log.error(f'❌ Correo de la factura {invoice_id} no enviado: {e}')
            return []

    # endregion

    # region operaciones
    async def cancel(self, invoice_id: UUID) -> Invoice:
        """Cancela una factura que aún no se ha enviado al PAC."""
        await self._get(invoice_id)
        cancelled = await self._transition(
            invoice_id, (InvoiceStatus.RECEIVED, InvoiceStatus.PREPARING), InvoiceStatus.CANCELLED
        )
        invoice = await self._get(invoice_id)
        if not cancelled:
            raise InvalidStateError(
                f'No se puede cancelar la factura {invoice_id} en estado {invoice.status}', current_status=invoice.status
            )
        facturacion_log.info(f'Factura {invoice_id} cancelada')
        return invoice

    async def ensure_resendable(self, invoice_id: UUID) -> Invoice:
        invoice = await self._get(invoice_id)
        if invoice.status != InvoiceStatus.AUTHORIZED or not invoice.cufe or not invoice.url_cufe:
            raise PreconditionError(
                f'La factura {invoice_id} no está autorizada (estado {invoice.status}), no se puede reenviar el correo'
            )
        return invoice

    async def resend_email(self, invoice_id: UUID) -> Invoice:
        """Reenvía solo el correo de una factura autorizada, con el CUFE y la URL ya registrados."""
        await self.ensure_resendable(invoice_id)
        await self.notify(invoice_id)
        return await self._get(invoice_id)

    async def get_status(self, invoice_id: UUID) -> InvoiceStatusResponse:
        invoice = await self._get(invoice_id)
        error_message = invoice.error_message
        if invoice.status in (InvoiceStatus.REJECTED, InvoiceStatus.ERROR) and not error_message:
            async with self.session_factory() as session:
                api_call = await api_call_query.get_latest(session, invoice_id)
            if api_call is not None:
                error_message = api_call.error_msg or PacClient.extract_error_detail(api_call.response_payload)

        return InvoiceStatusResponse(
            invoice_id=invoice.id,
            doc_kind=invoice.doc_kind,
            doc_number=invoice.d_nrodf,
            pto_fac=invoice.d_ptofacdf,
            status=invoice.status,
            email_status=invoice.email_status,
            cufe=invoice.cufe,
            url_cufe=invoice.url_cufe,
            pdf_url=invoice.pdf_url,
            xml_url=invoice.xml_url,
            subtotal=invoice.subtotal,
            itbms_amount=invoice.itbms_amount,
            total_amount=invoice.total_amount,
            error_message=error_message if invoice.status in (InvoiceStatus.REJECTED, InvoiceStatus.ERROR) else None,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            authorized_at=invoice.authorized_at,
        )

    async def recover_submission(self, invoice_id: UUID) -> Invoice:
        """
        Resuelve una factura que quedó en SENDING_TO_PAC. Si la respuesta del PAC quedó registrada se
        clasifica; en otro caso pasa a ERROR. Nunca se reenvía automáticamente.
        """
        invoice = await self._get(invoice_id)
        if invoice.status != InvoiceStatus.SENDING_TO_PAC:
            return invoice

        async with self.steps.step(invoice_id, Step.RECOVER) as step:
            async with self.session_factory() as session:
                api_call = await api_call_query.get_latest(session, invoice_id)
                emitter = await emitter_query.get(session, invoice.emitter_id)

            respuesta = None
            if api_call is not None and api_call.status == ApiCallStatus.SUCCESS and api_call.response_payload:
                try:
                    respuesta = DGIRespuesta.model_validate(api_call.response_payload)
                except PydanticValidationError:
                    facturacion_log.error(f'Respuesta registrada de la factura {invoice_id} no es válida')

            if respuesta is None or emitter is None:
                step.detail = 'sin respuesta registrada'
                await self._transition(
                    invoice_id,
                    (InvoiceStatus.SENDING_TO_PAC,),
                    InvoiceStatus.ERROR,
                    error_message=INTERRUPTED_SUBMISSION,
                )
                facturacion_log.error(f'❌ Factura {invoice_id}: {INTERRUPTED_SUBMISSION}')
                return await self._get(invoice_id)

            step.detail = f'respuesta registrada {api_call.id}'

        return await self._settle(invoice_id, self.pac_client_factory(emitter), respuesta, api_call.response_payload)

    # endregion
