"""
Base CRUD Repository Pattern
Generic repository shared by the back-office stores
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
import structlog

from app.core.database import Base

logger = structlog.get_logger()

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


def _as_dict(obj_in: Union[BaseModel, Dict[str, Any]], exclude_unset: bool = False) -> Dict[str, Any]:
    if isinstance(obj_in, dict):
        return dict(obj_in)
    return obj_in.model_dump(exclude_unset=exclude_unset)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Base CRUD repository with generic database operations

    Soft-deleted rows are hidden unless ``include_deleted`` is passed.
    Writes flush by default and leave the commit to the session owner.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _base_query(self, include_deleted: bool = False) -> Select:
        query = select(self.model)
        if hasattr(self.model, "is_deleted") and not include_deleted:
            query = query.where(self.model.is_deleted == False)  # noqa: E712
        return query

    def _apply_filters(self, query: Select, filters: Optional[Dict[str, Any]]) -> Select:
        for field, value in (filters or {}).items():
            if not hasattr(self.model, field):
                continue
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.where(column.in_(list(value)))
            else:
                query = query.where(column == value)
        return query

    async def get(
        self,
        db: AsyncSession,
        id: Union[UUID, str],
        include_deleted: bool = False
    ) -> Optional[ModelType]:
        result = await db.execute(self._base_query(include_deleted).where(self.model.id == id))
        record = result.unique().scalar_one_or_none()
        logger.debug("Record lookup", model=self.model.__name__, id=str(id), found=record is not None)
        return record

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        include_deleted: bool = False
    ) -> List[ModelType]:
        """
        Get multiple records with pagination and filtering

        Args:
            db: Database session
            skip: Number of records to skip
            limit: Maximum number of records to return
            filters: Equality filters; list values become ``IN`` clauses
            order_by: Field to order by, ``-field`` for descending
            include_deleted: Include soft-deleted records
        """
        query = self._apply_filters(self._base_query(include_deleted), filters)

        if order_by:
            field = order_by.lstrip("-")
            if hasattr(self.model, field):
                column = getattr(self.model, field)
                query = query.order_by(column.desc() if order_by.startswith("-") else column)
        elif hasattr(self.model, "created_at"):
            query = query.order_by(self.model.created_at.desc())

        result = await db.execute(query.offset(skip).limit(limit))
        return list(result.unique().scalars().all())

    async def count(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,
        include_deleted: bool = False
    ) -> int:
        query = select(func.count(self.model.id))
        if hasattr(self.model, "is_deleted") and not include_deleted:
            query = query.where(self.model.is_deleted == False)  # noqa: E712
        query = self._apply_filters(query, filters)
        return (await db.execute(query)).scalar() or 0

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Union[CreateSchemaType, Dict[str, Any]],
        commit: bool = False
    ) -> ModelType:
        db_obj = self.model(**_as_dict(obj_in))
        db.add(db_obj)

        if commit:
            await db.commit()
        else:
            await db.flush()
        # Server-side defaults are expired by the write; load them while still async
        await db.refresh(db_obj)

        logger.info("Record created", model=self.model.__name__, id=str(db_obj.id))
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]],
        commit: bool = False
    ) -> ModelType:
        for field, value in _as_dict(obj_in, exclude_unset=True).items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        if commit:
            await db.commit()
        else:
            await db.flush()
        await db.refresh(db_obj)

        logger.info("Record updated", model=self.model.__name__, id=str(db_obj.id))
        return db_obj

    async def delete(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        soft_delete: bool = True,
        commit: bool = False
    ) -> ModelType:
        soft = soft_delete and hasattr(db_obj, "mark_deleted")
        if soft:
            db_obj.mark_deleted()
        else:
            await db.delete(db_obj)

        if commit:
            await db.commit()
        else:
            await db.flush()

        logger.info("Record deleted", model=self.model.__name__, id=str(db_obj.id), soft_delete=soft)
        return db_obj
