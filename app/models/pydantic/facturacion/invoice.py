# app.models.pydantic.facturacion.invoice
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.internal.facturacion.payload import compute_totals
from app.internal.gen.utilities import round_money
from app.models.db.facturacion import DocumentType, EmailStatus, InvoiceStatus
from app.models.pydantic.base import Base


class InvoiceItemRequest(Base):
    line_no: int = Field(ge=1)
    sku: str | None = None
    description: str = Field(min_length=1)
    qty: Decimal = Field(gt=0)
    unit_price: Decimal = Field(gt=0)
    itbms_rate: str = Field(default='00', pattern=r'^\d{2}$')
    cpbs_abr: str | None = None
    cpbs_cmp: str | None = None
    line_total: Decimal = Field(gt=0)


class PaymentMethodRequest(Base):
    method_code: str = Field(min_length=1, max_length=2)
    amount: Decimal = Field(gt=0)


class NotificationRecipient(Base):
    email: str = Field(pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    name: str = ''


class CreateInvoiceRequest(Base):
    emitter_id: UUID
    customer_id: UUID
    doc_kind: DocumentType = DocumentType.INVOICE
    pto_fac: str | None = Field(default=None, pattern=r'^\d{3}$')
    items: list[InvoiceItemRequest] = Field(min_length=1)
    payment_methods: list[PaymentMethodRequest] = Field(min_length=1)
    notification_emails: list[NotificationRecipient] | None = None
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=255)

    @model_validator(mode='after')
    def validate_lines_and_payments(self):
        line_numbers = [item.line_no for item in self.items]
        if len(line_numbers) != len(set(line_numbers)):
            raise ValueError('line_no debe ser único dentro de la factura')

        totals = compute_totals(self.items)
        paid = round_money(sum((pm.amount for pm in self.payment_methods), Decimal('0')))
        if paid != totals.gross:
            raise ValueError(f'La suma de las formas de pago ({paid}) no coincide con el total de la factura ({totals.gross})')
        return self


class CreateInvoiceResponse(Base):
    invoice_id: UUID
    status: InvoiceStatus
    message: str


class InvoiceStatusResponse(Base):
    invoice_id: UUID
    doc_kind: str
    doc_number: str
    pto_fac: str
    status: InvoiceStatus
    email_status: EmailStatus
    cufe: str | None = None
    url_cufe: str | None = None
    pdf_url: str | None = None
    xml_url: str | None = None
    subtotal: Decimal
    itbms_amount: Decimal
    total_amount: Decimal
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    authorized_at: datetime | None = None


class ResendEmailResponse(Base):
    invoice_id: UUID
    email_status: EmailStatus
    message: str
