# app/models/db/session.py

# Inyeccion de dependencias
from fastapi import Depends
from typing import Annotated

from typing import AsyncGenerator

from sqlalchemy import make_url, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlmodel import SQLModel


from app.config import Config

url = make_url(Config.database_url)
# SQLite (pruebas) no admite pool_size
engine_kwargs = {'pool_size': 50} if url.get_backend_name() == 'postgresql' else {}

async_engine = create_async_engine(url, **engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Necesario para acceder a los objetos después del commit
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


AsyncSessionDep = Annotated[AsyncSession, Depends(get_async_session)]


async def create_db_and_tables():
    """Crea el esquema y las tablas de la base de datos si no existen."""
    async with async_engine.begin() as conn:
        if url.get_backend_name() == 'postgresql':
            await conn.execute(text(f"SET timezone = '{Config.local_timezone}'"))
            await conn.execute(text('CREATE SCHEMA IF NOT EXISTS public'))

        await conn.run_sync(SQLModel.metadata.create_all)
