# app.internal.query.facturacion

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.internal.gen.utilities import DateTz
from app.internal.log import factory_logger
from app.internal.query.base import BaseQuery
from app.models.db.facturacion import (
    ApiCall,
    ApiCallStatus,
    Customer,
    CustomerCreate,
    DocumentSeries,
    EmailLog,
    EmailStatus,
    Emitter,
    EmitterCreate,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceStep,
    PaymentMethod,
    StepStatus,
)

log_facturacion_query = factory_logger('facturacion_query', file=True)


class EmitterQuery(BaseQuery[Emitter, EmitterCreate]):
    def __init__(self) -> None:
        super().__init__(Emitter, EmitterCreate)


class CustomerQuery(BaseQuery[Customer, CustomerCreate]):
    def __init__(self) -> None:
        super().__init__(Customer, CustomerCreate)

    async def get_for_emitter(self, session: AsyncSession, customer_id: UUID, emitter_id: UUID) -> Customer | None:
        statement = select(Customer).where(Customer.id == customer_id).where(Customer.emitter_id == emitter_id)
        result = await session.execute(statement)
        return result.scalar_one_or_none()


class SeriesQuery:
    async def next_number(self, session: AsyncSession, emitter_id: UUID, doc_kind: str, pto_fac: str) -> int:
        """
        Reserva el siguiente consecutivo de la serie dentro de la transacción actual (sin commit).
        Si la serie no existe se crea iniciando en 1.
        """
        statement = (
            update(DocumentSeries)
            .where(DocumentSeries.emitter_id == emitter_id)  # type: ignore
            .where(DocumentSeries.doc_kind == doc_kind)  # type: ignore
            .where(DocumentSeries.pto_fac == pto_fac)  # type: ignore
            .values(next_number=DocumentSeries.next_number + 1)
            .returning(DocumentSeries.next_number)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(statement)
        next_number = result.scalar_one_or_none()
        if next_number is not None:
            return next_number - 1

        session.add(DocumentSeries(emitter_id=emitter_id, doc_kind=doc_kind, pto_fac=pto_fac, next_number=2))
        await session.flush()
        return 1


class InvoiceQuery(BaseQuery[Invoice, Invoice]):
    def __init__(self) -> None:
        super().__init__(Invoice, Invoice)

    async def get_by_idempotency_key(self, session: AsyncSession, idempotency_key: str) -> Invoice | None:
        statement = select(Invoice).where(Invoice.idempotency_key == idempotency_key)
        result = await session.execute(statement)
        return result.scalar_one_or_none()

    async def insert_with_lines(
        self,
        session: AsyncSession,
        invoice: Invoice,
        items: list[InvoiceItem],
        payment_methods: list[PaymentMethod],
    ) -> Invoice:
        """
        Inserta la factura con sus renglones y formas de pago en una sola transacción.

        Raises:
            IntegrityError: Llave de idempotencia o número de documento duplicados. La sesión queda revertida.
        """
        session.add(invoice)
        session.add_all(items)
        session.add_all(payment_methods)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise
        await session.refresh(invoice)
        return invoice

    async def get_items(self, session: AsyncSession, invoice_id: UUID) -> list[InvoiceItem]:
        statement = select(InvoiceItem).where(InvoiceItem.invoice_id == invoice_id).order_by(InvoiceItem.line_no)  # type: ignore
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def get_payment_methods(self, session: AsyncSession, invoice_id: UUID) -> list[PaymentMethod]:
        statement = select(PaymentMethod).where(PaymentMethod.invoice_id == invoice_id)
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def transition(
        self,
        session: AsyncSession,
        invoice_id: UUID,
        from_statuses: tuple[InvoiceStatus, ...],
        to_status: InvoiceStatus,
        **values: Any,
    ) -> bool:
        """
        Cambia el estado solo si el estado actual está en `from_statuses` (compare-and-set).
        Los campos adicionales se escriben en la misma sentencia. Retorna False si otro proceso ganó la carrera.
        """
        statement = (
            update(Invoice)
            .where(Invoice.id == invoice_id)  # type: ignore
            .where(Invoice.status.in_([status.value for status in from_statuses]))  # type: ignore
            .values(status=to_status.value, updated_at=DateTz.local(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(statement)
        await session.commit()
        changed = result.rowcount == 1
        if not changed:
            log_facturacion_query.warning(
                f'Transición a {to_status.value} descartada para la factura {invoice_id}: '
                f'el estado ya no es {", ".join(s.value for s in from_statuses)}'
            )
        return changed

    async def set_fields(self, session: AsyncSession, invoice_id: UUID, **values: Any) -> None:
        """Actualiza campos que no son de estado fiscal (artefactos, correo)."""
        statement = (
            update(Invoice)
            .where(Invoice.id == invoice_id)  # type: ignore
            .values(updated_at=DateTz.local(), **values)
            .execution_options(synchronize_session=False)
        )
        await session.execute(statement)
        await session.commit()

    async def get_by_status(
        self, session: AsyncSession, statuses: tuple[InvoiceStatus, ...], updated_before: datetime
    ) -> list[Invoice]:
        statement = (
            select(Invoice)
            .where(Invoice.status.in_([status.value for status in statuses]))  # type: ignore
            .where(Invoice.updated_at < updated_before)  # type: ignore
            .order_by(Invoice.created_at)  # type: ignore
        )
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def get_missing_artifacts(self, session: AsyncSession, max_attempts: int, updated_before: datetime) -> list[Invoice]:
        statement = (
            select(Invoice)
            .where(Invoice.status == InvoiceStatus.AUTHORIZED.value)  # type: ignore
            .where((Invoice.pdf_url.is_(None)) | (Invoice.xml_url.is_(None)))  # type: ignore
            .where(Invoice.artifact_attempts < max_attempts)  # type: ignore
            .where(Invoice.updated_at < updated_before)  # type: ignore
        )
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def get_failed_emails(self, session: AsyncSession, max_attempts: int, updated_before: datetime) -> list[Invoice]:
        statement = (
            select(Invoice)
            .where(Invoice.status == InvoiceStatus.AUTHORIZED.value)  # type: ignore
            .where(Invoice.email_status == EmailStatus.FAILED.value)  # type: ignore
            .where(Invoice.email_attempts < max_attempts)  # type: ignore
            .where(Invoice.updated_at < updated_before)  # type: ignore
        )
        result = await session.execute(statement)
        return list(result.scalars().all())


class ApiCallQuery:
    async def start(
        self, session: AsyncSession, invoice_id: UUID, endpoint: str, used_credential: str, request_payload: dict
    ) -> ApiCall:
        api_call = ApiCall(
            invoice_id=invoice_id,
            endpoint=endpoint,
            used_credential=used_credential,
            request_payload=request_payload,
        )
        session.add(api_call)
        await session.commit()
        await session.refresh(api_call)
        return api_call

    async def finish(
        self,
        session: AsyncSession,
        api_call_id: UUID,
        status: ApiCallStatus,
        response_payload: dict | None = None,
        http_status: int | None = None,
        error_msg: str | None = None,
    ) -> None:
        api_call = await session.get(ApiCall, api_call_id)
        if api_call is None:
            return
        api_call.status = status.value
        api_call.response_payload = response_payload
        api_call.http_status = http_status
        api_call.error_msg = error_msg
        api_call.updated_at = DateTz.local()
        session.add(api_call)
        await session.commit()

    async def get_latest(self, session: AsyncSession, invoice_id: UUID) -> ApiCall | None:
        statement = (
            select(ApiCall)
            .where(ApiCall.invoice_id == invoice_id)
            .order_by(ApiCall.created_at.desc())  # type: ignore
            .limit(1)
        )
        result = await session.execute(statement)
        return result.scalar_one_or_none()


class EmailLogQuery:
    async def record(
        self,
        session: AsyncSession,
        invoice_id: UUID,
        to_email: str,
        subject: str,
        status: EmailStatus,
        provider_id: str | None = None,
        error_msg: str | None = None,
    ) -> EmailLog:
        previous = await session.execute(
            select(EmailLog).where(EmailLog.invoice_id == invoice_id).where(EmailLog.to_email == to_email)
        )
        attempts = len(previous.scalars().all()) + 1
        email_log = EmailLog(
            invoice_id=invoice_id,
            to_email=to_email,
            subject=subject,
            status=status.value,
            attempts=attempts,
            provider_id=provider_id,
            error_msg=error_msg,
            sent_at=DateTz.local() if status == EmailStatus.SENT else None,
        )
        session.add(email_log)
        await session.commit()
        return email_log

    async def get_for_invoice(self, session: AsyncSession, invoice_id: UUID) -> list[EmailLog]:
        statement = select(EmailLog).where(EmailLog.invoice_id == invoice_id).order_by(EmailLog.created_at)  # type: ignore
        result = await session.execute(statement)
        return list(result.scalars().all())


class InvoiceStepQuery:
    async def start(self, session: AsyncSession, invoice_id: UUID, name: str) -> InvoiceStep:
        step = InvoiceStep(invoice_id=invoice_id, name=name)
        session.add(step)
        await session.commit()
        await session.refresh(step)
        return step

    async def finish(self, session: AsyncSession, step_id: UUID, status: StepStatus, detail: str | None = None) -> None:
        step = await session.get(InvoiceStep, step_id)
        if step is None:
            return
        step.status = status.value
        step.detail = detail
        step.finished_at = DateTz.local()
        session.add(step)
        await session.commit()

    async def get_for_invoice(self, session: AsyncSession, invoice_id: UUID) -> list[InvoiceStep]:
        statement = select(InvoiceStep).where(InvoiceStep.invoice_id == invoice_id).order_by(InvoiceStep.started_at)  # type: ignore
        result = await session.execute(statement)
        return list(result.scalars().all())


emitter_query = EmitterQuery()
customer_query = CustomerQuery()
series_query = SeriesQuery()
invoice_query = InvoiceQuery()
api_call_query = ApiCallQuery()
email_log_query = EmailLogQuery()
invoice_step_query = InvoiceStepQuery()
