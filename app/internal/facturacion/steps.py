# app.internal.facturacion.steps
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.internal.log import factory_logger
from app.internal.query.facturacion import invoice_step_query
from app.models.db.facturacion import StepStatus

steps_log = factory_logger('workflow', file=True)


class Step:
    BUILD = 'construir-documento'
    SUBMIT = 'enviar-pac'
    CLASSIFY = 'clasificar-respuesta'
    ARTIFACTS = 'generar-artefactos'
    NOTIFY = 'enviar-correo'
    RECOVER = 'recuperar-envio'


@dataclass
class StepContext:
    name: str
    detail: str | None = None


class StepRecorder:
    """Deja un registro por cada paso del flujo de una factura (inicio, fin y resultado)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def step(self, invoice_id: UUID, name: str) -> AsyncIterator[StepContext]:
        async with self.session_factory() as session:
            record = await invoice_step_query.start(session, invoice_id, name)

        context = StepContext(name=name)
        try:
            yield context
        except Exception as e:
            steps_log.error(f'❌ Paso {name} falló, factura {invoice_id}: {e}')
            async with self.session_factory() as session:
                await invoice_step_query.finish(session, record.id, StepStatus.FAILED, str(e))
            raise
        else:
            async with self.session_factory() as session:
                await invoice_step_query.finish(session, record.id, StepStatus.COMPLETED, context.detail)
