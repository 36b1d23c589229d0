"""
Entity store glue.

Thin helpers over AsyncSession that translate store failures into the
engine's error taxonomy and provide a nestable transaction scope. Only
the outermost scope commits; a failure anywhere rolls the whole scope back.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tabroom.errors import ConflictError, ErrorCode, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_DEPTH_KEY = "tabroom_tx_depth"


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Scoped transaction boundary.

    IntegrityError becomes ValidationError and a version mismatch on flush
    becomes ConflictError. Engine errors propagate unchanged.
    """
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            await db.commit()
    except IntegrityError as e:
        if depth == 0:
            await db.rollback()
            logger.error(f"Transaction rolled back on integrity violation: {e.orig}")
        raise ValidationError(
            "Uniqueness or reference constraint violated",
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"constraint": str(e.orig)}
        ) from e
    except StaleDataError as e:
        if depth == 0:
            await db.rollback()
            logger.error(f"Transaction rolled back on concurrent modification: {e}")
        raise ConflictError(
            "Entity was modified concurrently; reload and retry",
            code=ErrorCode.CONCURRENT_MODIFICATION
        ) from e
    except Exception:
        if depth == 0:
            await db.rollback()
        raise
    finally:
        db.info[_DEPTH_KEY] = depth


async def get_entity(db: AsyncSession, model: Type[ModelT], entity_id: UUID) -> ModelT:
    """Fetch by id or raise NotFoundError."""
    entity = await db.get(model, entity_id)
    if entity is None:
        raise NotFoundError(model.__name__, entity_id)
    return entity


async def find_entity(db: AsyncSession, model: Type[ModelT], entity_id: Optional[UUID]) -> Optional[ModelT]:
    if entity_id is None:
        return None
    return await db.get(model, entity_id)


async def lock_entity(db: AsyncSession, model: Type[ModelT], entity_id: UUID) -> ModelT:
    """
    Fetch by id with an exclusive row lock held until the enclosing
    transaction ends. populate_existing refreshes a stale identity-map copy
    so version checks run against the current row.
    """
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundError(model.__name__, entity_id)
    return entity


async def create_entity(db: AsyncSession, model: Type[ModelT], **fields: Any) -> ModelT:
    entity = model(**fields)
    db.add(entity)
    await db.flush()
    return entity


async def update_entity(db: AsyncSession, entity: ModelT, **fields: Any) -> ModelT:
    for key, value in fields.items():
        if not hasattr(entity, key):
            raise ValidationError(f"{type(entity).__name__} has no attribute '{key}'")
        setattr(entity, key, value)
    await db.flush()
    return entity


async def delete_entity(db: AsyncSession, model: Type[ModelT], entity_id: UUID) -> None:
    entity = await get_entity(db, model, entity_id)
    await db.delete(entity)
    await db.flush()


def check_version(entity: Any, expected_version: Optional[int]) -> None:
    """Explicit optimistic check for callers that read before writing."""
    if expected_version is not None and entity.version != expected_version:
        raise ConflictError(
            f"{type(entity).__name__} {entity.id} changed (version {entity.version}, expected {expected_version})",
            code=ErrorCode.CONCURRENT_MODIFICATION,
            details={"current_version": entity.version, "expected_version": expected_version}
        )
