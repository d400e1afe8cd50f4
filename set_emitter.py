import asyncio
from getpass import getpass

from pydantic import ValidationError

from app.internal.log import factory_logger, mask_secret
from app.internal.query.facturacion import emitter_query
from app.models.db.facturacion import EmitterCreate
from app.models.db.session import create_db_and_tables, get_async_session


logger = factory_logger('set_emitter', file=False)


async def set_emitter():
    """Alta de un emisor con sus credenciales del PAC. Las llaves se leen sin eco en la terminal."""
    data = {
        'name': input('Razón social: '),
        'company_code': input('Código de compañía en el PAC: '),
        'ruc_tipo': input('Tipo de RUC (1 natural, 2 jurídico): '),
        'ruc_numero': input('RUC: '),
        'ruc_dv': input('DV: '),
        'suc_em': input('Sucursal [0001]: ') or '0001',
        'pto_fac_default': input('Punto de facturación [001]: ') or '001',
        'iamb': int(input('Ambiente (1 producción, 2 pruebas) [2]: ') or 2),
        'email': input('Correo: ') or None,
        'phone': input('Teléfono: ') or None,
        'address_line': input('Dirección: ') or None,
        'pac_api_key': getpass('api-key del PAC:\n'),
        'pac_subscription_key': getpass('ocp-apim-subscription-key del PAC:\n'),
    }

    try:
        emitter = EmitterCreate.model_validate(data)
    except ValidationError as e:
        logger.error(f'❌ Datos de emisor no válidos:\n{e}')
        return

    await create_db_and_tables()
    session_gen = get_async_session()
    session = await anext(session_gen)

    try:
        db_emitter = await emitter_query.create(session, emitter)
        logger.info(f'✅ Emisor creado con ID {db_emitter.id}, api-key {mask_secret(emitter.pac_api_key)}')
    finally:
        await session_gen.aclose()


if __name__ == '__main__':
    asyncio.run(set_emitter())
