# app.internal.facturacion.workflow

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from datetime import timedelta
from uuid import UUID

from pydantic import Field

from app.config import Config
from app.internal.facturacion.state_machine import InvoiceStateMachine
from app.internal.gen.utilities import DateTz
from app.internal.log import factory_logger
from app.internal.query.facturacion import invoice_query
from app.models.db.facturacion import InvoiceStatus
from app.models.pydantic.base import Base

workflow_log = factory_logger('workflow', file=True)


class RecoverySummary(Base):
    resumed: list[UUID] = Field(default_factory=list)
    settled: list[UUID] = Field(default_factory=list)
    artifacts: list[UUID] = Field(default_factory=list)
    emails: list[UUID] = Field(default_factory=list)


async def procesar_pendientes(
    state_machine: InvoiceStateMachine,
    stuck_minutes: int = Config.workflow_stuck_minutes,
    artifact_max_attempts: int = Config.artifact_max_attempts,
    email_max_attempts: int = Config.email_max_attempts,
) -> RecoverySummary:
    """
    Retoma el trabajo que quedó a medias (reinicio del proceso, caída del servidor):

    - RECEIVED / PREPARING: se procesan de nuevo, aún no se ha enviado nada al PAC.
    - SENDING_TO_PAC: se resuelven con la respuesta registrada o pasan a ERROR, sin reenviar.
    - AUTHORIZED sin artefactos o con correo fallido: se reintenta hasta el máximo de intentos.

    Se ignoran las facturas actualizadas en los últimos `stuck_minutes` para no competir con
    procesos en curso.
    """
    summary = RecoverySummary()
    cutoff = DateTz.local() - timedelta(minutes=stuck_minutes)

    async with state_machine.session_factory() as session:
        pending = await invoice_query.get_by_status(
            session, (InvoiceStatus.RECEIVED, InvoiceStatus.PREPARING), updated_before=cutoff
        )
        sending = await invoice_query.get_by_status(session, (InvoiceStatus.SENDING_TO_PAC,), updated_before=cutoff)
        missing_artifacts = await invoice_query.get_missing_artifacts(session, artifact_max_attempts, updated_before=cutoff)
        failed_emails = await invoice_query.get_failed_emails(session, email_max_attempts, updated_before=cutoff)

    for invoice in pending:
        workflow_log.info(f'Retomando factura {invoice.id} en estado {invoice.status}')
        await state_machine.process(invoice.id)
        summary.resumed.append(invoice.id)

    for invoice in sending:
        workflow_log.warning(f'Factura {invoice.id} quedó en SENDING_TO_PAC, se resuelve sin reenviar')
        await state_machine.recover_submission(invoice.id)
        summary.settled.append(invoice.id)

    for invoice in missing_artifacts:
        await state_machine.generate_artifacts(invoice.id)
        summary.artifacts.append(invoice.id)

    for invoice in failed_emails:
        await state_machine.notify(invoice.id)
        summary.emails.append(invoice.id)

    workflow_log.info(
        f'Recuperación: {len(summary.resumed)} retomadas, {len(summary.settled)} resueltas, '
        f'{len(summary.artifacts)} artefactos, {len(summary.emails)} correos'
    )
    return summary


if __name__ == '__main__':
    from asyncio import run

    run(procesar_pendientes(InvoiceStateMachine()))
