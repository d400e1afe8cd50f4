# app/entrypoint.py
if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.models.db.session import create_db_and_tables
from app.internal.facturacion.state_machine import InvoiceStateMachine
from app.internal.facturacion.workflow import procesar_pendientes

# Importar modelos para que SQLModel los registre antes de crear las tablas
from app.models.db import facturacion  # noqa: F401


async def tasks_entrypoint():
    print('⏳ Inicializando base de datos...')
    await create_db_and_tables()
    print('✅ Base de datos lista.')
    print('⏳ Retomando facturas interrumpidas...')
    summary = await procesar_pendientes(InvoiceStateMachine())
    print(f'✅ Recuperación terminada: {summary.model_dump_json()}')


if __name__ == '__main__':
    from asyncio import run

    run(tasks_entrypoint())
