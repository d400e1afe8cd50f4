# app.internal.facturacion.notifications
from dataclasses import dataclass
from html import escape
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.internal.facturacion.exceptions import DownstreamError
from app.internal.gen.utilities import format_money
from app.internal.integrations.email import Attachment, ResendClient
from app.internal.log import factory_logger
from app.internal.query.facturacion import customer_query, email_log_query, emitter_query, invoice_query
from app.models.db.facturacion import EmailStatus, InvoiceStatus

notifications_log = factory_logger('notificaciones', file=True)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class InvoiceMeta:
    invoice_id: UUID
    doc_number: str
    cufe: str
    url_cufe: str
    emitter_name: str
    customer_name: str
    total: str


def render_subject(meta: InvoiceMeta) -> str:
    return f'Factura Electrónica {meta.doc_number} - Autorizada por DGI'


def render_html(meta: InvoiceMeta) -> str:
    return f"""<!DOCTYPE html>
<html lang="es">
<body style="font-family: Arial, sans-serif; color: #222;">
    <h2>Factura Electrónica No. {escape(meta.doc_number)}</h2>
    <p>Estimado(a) {escape(meta.customer_name)},</p>
    <p>{escape(meta.emitter_name)} le informa que su factura electrónica fue autorizada por la
       Dirección General de Ingresos (DGI).</p>
    <p><strong>Total:</strong> B/. {escape(meta.total)}</p>
    <p><strong>CUFE:</strong><br><span style="font-family: monospace; word-break: break-all;">{escape(meta.cufe)}</span></p>
    <p><a href="{escape(meta.url_cufe)}">Verificar en Portal DGI</a></p>
    <p>Adjuntamos la representación impresa (PDF) y el documento electrónico (XML).</p>
</body>
</html>"""


class NotificationDispatcher:
    """
    Envía la factura autorizada por correo al cliente y a los destinatarios adicionales.
    Solo escribe los campos de correo de la factura y los registros de envío.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], email_client: ResendClient | None = None):
        self.session_factory = session_factory
        self.email_client = email_client or ResendClient()

    async def send(self, recipient: str, meta: InvoiceMeta, attachments: list[Attachment]) -> SendResult:
        try:
            message_id = await self.email_client.send_email(
                to=[recipient], subject=render_subject(meta), html=render_html(meta), attachments=attachments
            )
        except DownstreamError as e:
            return SendResult(success=False, error=e.msg or str(e))
        return SendResult(success=True, message_id=message_id)

    async def dispatch(self, invoice_id: UUID, attachments: list[Attachment]) -> list[SendResult]:
        async with self.session_factory() as session:
            invoice = await invoice_query.get(session, invoice_id)
            if invoice is None or invoice.status != InvoiceStatus.AUTHORIZED or not invoice.cufe or not invoice.url_cufe:
                notifications_log.warning(f'Factura {invoice_id} sin autorización, no se envía correo')
                return []
            emitter = await emitter_query.get(session, invoice.emitter_id)
            customer = await customer_query.get(session, invoice.customer_id)

        meta = InvoiceMeta(
            invoice_id=invoice.id,
            doc_number=invoice.d_nrodf,
            cufe=invoice.cufe,
            url_cufe=invoice.url_cufe,
            emitter_name=emitter.name if emitter else '',
            customer_name=customer.name if customer else '',
            total=format_money(invoice.total_amount),
        )

        recipients = []
        if customer and customer.email:
            recipients.append(customer.email)
        for extra in invoice.notification_emails or []:
            email = extra.get('email')
            if email and email.lower() not in (r.lower() for r in recipients):
                recipients.append(email)

        if invoice.email_status == EmailStatus.FAILED:
            async with self.session_factory() as session:
                await invoice_query.set_fields(session, invoice.id, email_status=EmailStatus.RETRYING.value)

        results = []
        for recipient in recipients:
            result = await self.send(recipient, meta, attachments)
            results.append(result)
            async with self.session_factory() as session:
                await email_log_query.record(
                    session,
                    invoice.id,
                    recipient,
                    render_subject(meta),
                    EmailStatus.SENT if result.success else EmailStatus.FAILED,
                    provider_id=result.message_id,
                    error_msg=result.error,
                )

        if not recipients:
            notifications_log.warning(f'Factura {invoice_id} sin destinatarios de correo')
        delivered = bool(results) and all(result.success for result in results)
        email_status = EmailStatus.SENT if delivered else EmailStatus.FAILED
        async with self.session_factory() as session:
            await invoice_query.set_fields(
                session,
                invoice.id,
                email_status=email_status.value,
                email_attempts=invoice.email_attempts + 1,
            )

        if delivered:
            notifications_log.info(f'✅ Correo de la factura {invoice.d_nrodf} enviado a {", ".join(recipients)}')
        else:
            errors = '; '.join(result.error for result in results if result.error) or 'sin destinatarios'
            notifications_log.error(f'❌ Correo de la factura {invoice.d_nrodf} no enviado: {errors}')
        return results
