# app/routers/base.py
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlmodel import SQLModel

from app.internal.query.base import BaseQuery, Sort
from app.models.db.session import AsyncSessionDep


class CRUD:
    def __init__(
        self,
        router: APIRouter,
        name: str,
        plural: str,
        model_query: BaseQuery,
        model_public: type[SQLModel],
        model_create: type[SQLModel],
    ) -> None:
        """
        Crea rutas CRUD genéricas para un modelo dado.

        Args:
            router: Router donde se registran las rutas.
            name: Nombre singular del recurso (ej. "emitter").
            plural: Nombre plural para el listado (ej. "emitters").
            model_query: Consulta del modelo.
            model_public: Modelo de respuesta; permite ocultar campos sensibles.
            model_create: Modelo de entrada para creación y actualización.

        DELETE es una baja lógica (is_active = False): los registros referenciados por facturas se conservan.
        """
        label = name.replace('_', ' ')

        def not_found(resource_id: UUID) -> HTTPException:
            return HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f'{label} con ID {resource_id} no encontrado',
            )

        @router.post(
            f'/{name}',
            operation_id=f'create_{name}',
            response_model=model_public,
            status_code=status.HTTP_201_CREATED,
            summary=f'Crear {label}',
        )
        async def create_resource(
            resource: model_create,  # type: ignore
            session: AsyncSessionDep,
        ):
            return await model_query.create(session, resource)

        @router.get(
            f'/{plural}',
            operation_id=f'get_{plural}',
            response_model=list[model_public],
            summary=f'Obtener lista de {plural.replace("_", " ")}',
        )
        async def get_resources(
            session: AsyncSessionDep,
            skip: int = 0,
            limit: int = 100,
            sort: Sort = Sort.DESC,
            only_active: bool = True,
        ):
            return await model_query.get_list(session=session, skip=skip, limit=limit, sort=sort, only_active=only_active)

        @router.get(
            f'/{name}/{{resource_id}}',
            operation_id=f'get_{name}_by_id',
            response_model=model_public,
            summary=f'Obtener {label} por ID',
        )
        async def get_resource(session: AsyncSessionDep, resource_id: UUID):
            db_resource = await model_query.get(session, resource_id)
            if db_resource is None:
                raise not_found(resource_id)
            return db_resource

        @router.put(
            f'/{name}/{{resource_id}}',
            operation_id=f'update_{name}',
            response_model=model_public,
            summary=f'Actualizar {label}',
        )
        async def update_resource(
            session: AsyncSessionDep,
            resource_id: UUID,
            new_data: model_create,  # type: ignore
        ):
            if await model_query.get(session, resource_id) is None:
                raise not_found(resource_id)
            return await model_query.update(session, new_data, resource_id)

        @router.delete(
            f'/{name}/{{resource_id}}',
            operation_id=f'deactivate_{name}',
            response_model=model_public,
            summary=f'Desactivar {label}',
        )
        async def deactivate_resource(session: AsyncSessionDep, resource_id: UUID):
            deactivated = await model_query.deactivate(session, resource_id)
            if deactivated is None:
                raise not_found(resource_id)
            return deactivated
