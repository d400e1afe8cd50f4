# main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.routers import facturacion
from app.internal.log import factory_logger

logger = factory_logger('main', file=False)

app = FastAPI(
    title='API de Facturación Electrónica DGI',
    description='Emisión de facturas electrónicas ante la DGI de Panamá a través del PAC.',
    version='1.0.0',
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

# Facturación electrónica, emisores y clientes
app.include_router(facturacion.router)


# Ruta raíz simple para verificar que la API está funcionando
@app.get('/', tags=['Root'])
async def read_root():
    """Ruta raíz de la API."""
    return {'message': 'API Facturación Electrónica DGI'}
