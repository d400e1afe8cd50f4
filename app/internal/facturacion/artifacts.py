# app.internal.facturacion.artifacts
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.internal.facturacion.exceptions import DownstreamError
from app.internal.integrations.email import Attachment
from app.internal.integrations.pdf import render_invoice_html, render_pdf
from app.internal.integrations.storage import StorageClient
from app.internal.log import factory_logger
from app.internal.query.facturacion import customer_query, emitter_query, invoice_query
from app.models.db.facturacion import Invoice, InvoiceStatus

artifacts_log = factory_logger('artifacts', file=True)

PDF = 'application/pdf'
XML = 'application/xml'

# content type -> (carpeta, extensión)
STORAGE_LAYOUT = {
    PDF: ('pdfs', 'pdf'),
    XML: ('xml', 'xml'),
}


@dataclass(frozen=True)
class StoreResult:
    success: bool
    url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ArtifactResult:
    pdf: StoreResult
    xml: StoreResult


def artifact_path(invoice_id: UUID, doc_number: str, content_type: str) -> str:
    folder, extension = STORAGE_LAYOUT[content_type]
    return f'{folder}/{invoice_id}/{doc_number}.{extension}'


class ArtifactPipeline:
    """
    Genera el PDF de la factura autorizada y publica PDF y XML firmado en el almacenamiento.

    Cada artefacto es independiente: si uno falla el otro se publica igual. Solo escribe
    pdf_url, xml_url, artifact_error y artifact_attempts; nunca toca el estado fiscal.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: StorageClient | None = None,
        renderer: Callable[[str], Awaitable[bytes]] = render_pdf,
    ):
        self.session_factory = session_factory
        self.storage = storage or StorageClient()
        self.renderer = renderer

    async def store(self, invoice_id: UUID, doc_number: str, data: bytes, content_type: str) -> StoreResult:
        if content_type not in STORAGE_LAYOUT:
            return StoreResult(success=False, error=f'Tipo de contenido no soportado: {content_type}')
        if not data:
            return StoreResult(success=False, error='Contenido vacío')

        path = artifact_path(invoice_id, doc_number, content_type)
        try:
            url = await self.storage.upload(path, data, content_type)
        except DownstreamError as e:
            return StoreResult(success=False, error=e.msg or str(e))
        return StoreResult(success=True, url=url)

    async def _render(self, invoice: Invoice) -> bytes:
        async with self.session_factory() as session:
            emitter = await emitter_query.get(session, invoice.emitter_id)
            customer = await customer_query.get(session, invoice.customer_id)
            items = await invoice_query.get_items(session, invoice.id)
        html = render_invoice_html(invoice, emitter, customer, items)
        return await self.renderer(html)

    async def generate(self, invoice_id: UUID) -> ArtifactResult | None:
        async with self.session_factory() as session:
            invoice = await invoice_query.get(session, invoice_id)
        if invoice is None or invoice.status != InvoiceStatus.AUTHORIZED:
            artifacts_log.warning(f'Factura {invoice_id} no autorizada, no se generan artefactos')
            return None

        if invoice.pdf_url:
            pdf = StoreResult(success=True, url=invoice.pdf_url)
        else:
            try:
                data = await self._render(invoice)
            except Exception as e:
                # Playwright puede fallar de muchas formas (navegador, timeout, plantilla)
                artifacts_log.error(f'❌ No fue posible generar el PDF de la factura {invoice_id}: {e}')
                pdf = StoreResult(success=False, error=f'PDF: {e}')
            else:
                pdf = await self.store(invoice.id, invoice.d_nrodf, data, PDF)

        if invoice.xml_url:
            xml = StoreResult(success=True, url=invoice.xml_url)
        elif invoice.xml_fe:
            xml = await self.store(invoice.id, invoice.d_nrodf, invoice.xml_fe.encode('utf-8'), XML)
        else:
            xml = StoreResult(success=False, error='La factura no tiene XML firmado')

        errors = [result.error for result in (pdf, xml) if not result.success and result.error]
        async with self.session_factory() as session:
            await invoice_query.set_fields(
                session,
                invoice.id,
                pdf_url=pdf.url,
                xml_url=xml.url,
                artifact_error='; '.join(errors) or None,
                artifact_attempts=invoice.artifact_attempts + 1,
            )

        if errors:
            artifacts_log.warning(f'Artefactos incompletos para la factura {invoice_id}: {"; ".join(errors)}')
        else:
            artifacts_log.info(f'✅ Artefactos publicados para la factura {invoice_id}')
        return ArtifactResult(pdf=pdf, xml=xml)

    async def load_attachments(self, invoice: Invoice) -> list[Attachment]:
        """Adjuntos del correo a partir de lo ya publicado. Los que no estén disponibles se omiten."""
        attachments = []
        if invoice.pdf_url:
            try:
                data = await self.storage.download(artifact_path(invoice.id, invoice.d_nrodf, PDF))
            except DownstreamError as e:
                artifacts_log.warning(f'No se adjunta el PDF de la factura {invoice.id}: {e.msg}')
            else:
                attachments.append(Attachment(f'Factura_{invoice.d_nrodf}.pdf', data, PDF))
        if invoice.xml_fe:
            attachments.append(Attachment(f'Factura_{invoice.d_nrodf}.xml', invoice.xml_fe.encode('utf-8'), XML))
        return attachments
