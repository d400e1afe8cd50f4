# app/internal/query/base.py
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.internal.gen.utilities import DateTz
from app.internal.log import factory_logger

ModelDB = TypeVar('ModelDB', bound=SQLModel)
ModelCreate = TypeVar('ModelCreate', bound=SQLModel)


log_base_query = factory_logger('base_query', file=True)


class Sort(str, Enum):
    ASC = 'asc'
    DESC = 'desc'


class BaseQuery(Generic[ModelDB, ModelCreate]):
    def __init__(self, model_db: type[ModelDB], model_create: type[ModelCreate]) -> None:
        self.model_db = model_db
        self.model_create = model_create

    async def get(self, session: AsyncSession, id: UUID) -> ModelDB | None:
        """Obtiene un objeto por su ID"""
        result = await session.get(self.model_db, id)
        return result

    async def get_list(
        self,
        session: AsyncSession,
        skip: int = 0,
        limit: int = 100,
        sort: Sort = Sort.DESC,
        only_active: bool = False,
    ) -> list[ModelDB]:
        """Obtiene una lista paginada ordenada por fecha de creación."""
        created_at = self.model_db.created_at  # type: ignore
        order = created_at.asc() if sort == Sort.ASC else created_at.desc()
        stmt = select(self.model_db)
        if only_active:
            stmt = stmt.where(self.model_db.is_active.is_(True))  # type: ignore
        stmt = stmt.offset(skip).limit(limit).order_by(order)
        result = await session.execute(stmt)
        return list(result.scalars().all()) or []

    async def create(self, session: AsyncSession, obj: ModelCreate) -> ModelDB:
        """Crea un nuevo objeto de forma asíncrona."""
        create_model = self.model_create.model_validate(obj.model_dump())  # Se garantiza que el objeto sea del tipo correcto
        db_model = self.model_db(**create_model.model_dump())
        session.add(db_model)
        await session.commit()
        await session.refresh(db_model)
        return db_model

    async def update(self, session: AsyncSession, new_obj: SQLModel, pk: UUID) -> ModelDB:
        """Actualiza un objeto existente de forma asíncrona."""
        db_obj = await session.get(self.model_db, pk)
        if not db_obj:
            exception = ValueError(f'No existe el objeto con id {pk}')
            log_base_query.error(str(exception))
            raise exception

        update_data = new_obj.model_dump(exclude_unset=True)
        db_obj.sqlmodel_update(update_data)
        if hasattr(db_obj, 'updated_at'):
            db_obj.updated_at = DateTz.local()  # type: ignore

        session.add(db_obj)
        await session.commit()
        await session.refresh(db_obj)
        return db_obj

    async def deactivate(self, session: AsyncSession, pk: UUID) -> ModelDB | None:
        """Baja lógica: los registros referenciados por facturas nunca se eliminan."""
        db_obj = await session.get(self.model_db, pk)
        if not db_obj:
            return None

        db_obj.is_active = False  # type: ignore
        if hasattr(db_obj, 'updated_at'):
            db_obj.updated_at = DateTz.local()  # type: ignore
        session.add(db_obj)
        await session.commit()
        await session.refresh(db_obj)
        return db_obj
