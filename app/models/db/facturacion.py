# app.models.db.facturacion

"""
Modelos de la facturación electrónica DGI: emisores, clientes, facturas con sus renglones y formas de pago,
y los registros de auditoría (llamadas al PAC, correos y pasos del flujo).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlalchemy import JSON, String, UniqueConstraint
from sqlmodel import SQLModel, Field, TIMESTAMP, TEXT, SMALLINT

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.internal.gen.utilities import DateTz


class InvoiceStatus(str, Enum):
    RECEIVED = 'RECEIVED'
    PREPARING = 'PREPARING'
    SENDING_TO_PAC = 'SENDING_TO_PAC'
    AUTHORIZED = 'AUTHORIZED'
    REJECTED = 'REJECTED'
    ERROR = 'ERROR'
    CANCELLED = 'CANCELLED'


class EmailStatus(str, Enum):
    PENDING = 'PENDING'
    SENT = 'SENT'
    FAILED = 'FAILED'
    RETRYING = 'RETRYING'


class DocumentType(str, Enum):
    INVOICE = 'invoice'
    IMPORT_INVOICE = 'import_invoice'
    EXPORT_INVOICE = 'export_invoice'
    CREDIT_NOTE = 'credit_note'
    DEBIT_NOTE = 'debit_note'
    ZONE_FRANCA = 'zone_franca'
    REEMBOLSO = 'reembolso'
    FOREIGN_INVOICE = 'foreign_invoice'


class ApiCallStatus(str, Enum):
    PENDING = 'pending'
    SUCCESS = 'success'
    ERROR = 'error'


class StepStatus(str, Enum):
    STARTED = 'STARTED'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'


class Timestamps(SQLModel):
    created_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore
    updated_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore


# region emisores
class EmitterBase(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    company_code: str = Field(min_length=1, max_length=50, unique=True)
    ruc_tipo: str = Field(min_length=1, max_length=2)  # 1 natural, 2 jurídico
    ruc_numero: str = Field(min_length=1, max_length=30)
    ruc_dv: str = Field(min_length=1, max_length=3)
    suc_em: str = Field(default='0001', max_length=4)
    pto_fac_default: str = Field(default='001', max_length=3)
    iamb: int = Field(sa_type=SMALLINT, default=2)  # 1 producción, 2 pruebas
    itpemis_default: str = Field(default='01', max_length=2)
    idoc_default: str = Field(default='01', max_length=2)
    email: str | None = None
    phone: str | None = None
    address_line: str | None = None
    ubi_code: str | None = None
    corregimiento: str | None = None
    distrito: str | None = None
    provincia: str | None = None
    coordinates: str | None = None
    is_active: bool = True

    @field_validator('iamb')
    @classmethod
    def validate_iamb(cls, value: int) -> int:
        if value not in (1, 2):
            raise ValueError('iamb debe ser 1 (producción) o 2 (pruebas)')
        return value


class EmitterPublic(EmitterBase):
    id: UUID


class EmitterCreate(EmitterBase):
    pac_api_key: str = Field(min_length=1)
    pac_subscription_key: str = Field(min_length=1)


class Emitter(EmitterCreate, table=True):
    __tablename__ = 'emitters'  # type: ignore
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    created_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore
    updated_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore


# endregion


# region clientes
class CustomerCreate(SQLModel):
    emitter_id: UUID = Field(foreign_key='emitters.id', index=True)
    name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address_line: str | None = None
    ubi_code: str | None = None
    tax_id: str | None = None
    tipo_receptor: str = Field(default='02', max_length=2)
    is_active: bool = True


class Customer(CustomerCreate, table=True):
    __tablename__ = 'customers'  # type: ignore
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    created_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore
    updated_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore


# endregion


class DocumentSeries(SQLModel, table=True):
    __tablename__ = 'document_series'  # type: ignore
    __table_args__ = (UniqueConstraint('emitter_id', 'doc_kind', 'pto_fac', name='uq_document_series'),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    emitter_id: UUID = Field(foreign_key='emitters.id')
    doc_kind: str = Field(max_length=30)
    pto_fac: str = Field(max_length=3)
    next_number: int = 1


# region facturas
class Invoice(Timestamps, table=True):
    __tablename__ = 'invoices'  # type: ignore
    __table_args__ = (
        UniqueConstraint('emitter_id', 'doc_kind', 'd_ptofacdf', 'd_nrodf', name='uq_invoice_document_number'),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    emitter_id: UUID = Field(foreign_key='emitters.id', index=True)
    customer_id: UUID = Field(foreign_key='customers.id', index=True)
    doc_kind: str = Field(sa_type=String(30), default=DocumentType.INVOICE.value)
    d_nrodf: str = Field(max_length=10)
    d_ptofacdf: str = Field(max_length=3)
    status: InvoiceStatus = Field(sa_type=String(20), default=InvoiceStatus.RECEIVED.value, index=True)
    email_status: EmailStatus = Field(sa_type=String(20), default=EmailStatus.PENDING.value)
    # Datos fiscales, solo presentes cuando status == AUTHORIZED
    cufe: str | None = Field(default=None, max_length=100)
    url_cufe: str | None = Field(sa_type=TEXT, default=None)
    xml_response: dict | None = Field(sa_type=JSON, default=None)
    xml_fe: str | None = Field(sa_type=TEXT, default=None)
    authorized_at: datetime | None = Field(sa_type=TIMESTAMP(timezone=True), default=None)  # type: ignore
    subtotal: Decimal = Field(default=Decimal('0.00'), max_digits=14, decimal_places=2)
    itbms_amount: Decimal = Field(default=Decimal('0.00'), max_digits=14, decimal_places=2)
    total_amount: Decimal = Field(default=Decimal('0.00'), max_digits=14, decimal_places=2)
    total_received: Decimal = Field(default=Decimal('0.00'), max_digits=14, decimal_places=2)
    idempotency_key: str | None = Field(default=None, max_length=255, unique=True)
    notification_emails: list[dict] | None = Field(sa_type=JSON, default=None)
    error_message: str | None = Field(sa_type=TEXT, default=None)
    # Artefactos
    pdf_url: str | None = Field(sa_type=TEXT, default=None)
    xml_url: str | None = Field(sa_type=TEXT, default=None)
    artifact_error: str | None = Field(sa_type=TEXT, default=None)
    artifact_attempts: int = Field(sa_type=SMALLINT, default=0)
    email_attempts: int = Field(sa_type=SMALLINT, default=0)
    issued_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore


class InvoiceItem(SQLModel, table=True):
    __tablename__ = 'invoice_items'  # type: ignore
    __table_args__ = (UniqueConstraint('invoice_id', 'line_no', name='uq_invoice_item_line'),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key='invoices.id', index=True)
    line_no: int
    sku: str | None = None
    description: str
    qty: Decimal = Field(max_digits=14, decimal_places=4)
    unit_price: Decimal = Field(max_digits=14, decimal_places=4)
    itbms_rate: str = Field(default='00', max_length=2)
    cpbs_abr: str | None = None
    cpbs_cmp: str | None = None
    line_total: Decimal = Field(max_digits=14, decimal_places=2)


class PaymentMethod(SQLModel, table=True):
    __tablename__ = 'invoice_payment_methods'  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key='invoices.id', index=True)
    method_code: str = Field(max_length=2)
    amount: Decimal = Field(max_digits=14, decimal_places=2)


# endregion


# region auditoría
class ApiCall(Timestamps, table=True):
    __tablename__ = 'invoice_api_calls'  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key='invoices.id', index=True)
    endpoint: str
    method: str = 'POST'
    used_credential: str  # company_code del emisor, nunca las llaves
    request_payload: dict | None = Field(sa_type=JSON, default=None)
    response_payload: dict | None = Field(sa_type=JSON, default=None)
    http_status: int | None = None
    status: ApiCallStatus = Field(sa_type=String(10), default=ApiCallStatus.PENDING.value)
    error_msg: str | None = Field(sa_type=TEXT, default=None)


class EmailLog(Timestamps, table=True):
    __tablename__ = 'email_logs'  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key='invoices.id', index=True)
    to_email: str
    subject: str
    status: EmailStatus = Field(sa_type=String(20), default=EmailStatus.PENDING.value)
    attempts: int = Field(sa_type=SMALLINT, default=1)
    provider_id: str | None = None
    error_msg: str | None = Field(sa_type=TEXT, default=None)
    sent_at: datetime | None = Field(sa_type=TIMESTAMP(timezone=True), default=None)  # type: ignore


class InvoiceStep(SQLModel, table=True):
    __tablename__ = 'invoice_steps'  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key='invoices.id', index=True)
    name: str = Field(max_length=50)
    status: StepStatus = Field(sa_type=String(10), default=StepStatus.STARTED.value)
    detail: str | None = Field(sa_type=TEXT, default=None)
    started_at: datetime = Field(sa_type=TIMESTAMP(timezone=True), default_factory=DateTz.local)  # type: ignore
    finished_at: datetime | None = Field(sa_type=TIMESTAMP(timezone=True), default=None)  # type: ignore


# endregion
