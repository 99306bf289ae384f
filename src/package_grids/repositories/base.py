"""Base repository class with generic CRUD operations.

This module implements a composition-based repository pattern that provides
reusable database access operations (CRUD) for any SQLAlchemy model.

Key Concepts:
- COMPOSITION PATTERN: BaseRepository is injected as a dependency, not inherited
- GENERIC TYPE SAFETY: Uses TypeVar[ModelType] for compile-time type checking
- FLUSH, DON'T COMMIT: Writes are flushed; the caller decides when to commit
- TRACING: @trace_database decorators integrate with OpenTelemetry

Usage Example:
    from sqlalchemy.ext.asyncio import AsyncSession
    from package_grids.models import Grid

    session: AsyncSession
    repo = BaseRepository(session, Grid)
    grid = await repo.get(grid_id)
    web = await repo.get_by_or_404(slug="web")
    new_grid = await repo.create(name="Web", slug="web")
    deleted = await repo.delete(new_grid.id)
    await repo.commit()

See package_grids/repositories/grid.py for an example of composition pattern usage.
"""

from typing import Any, Generic, NoReturn, Optional, TypeVar

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from package_grids.core.logging import get_logger
from package_grids.core.tracing import trace_database

# ============================================================================
# GENERIC TYPE DEFINITION
# ============================================================================
# ModelType is bound to DeclarativeBase so BaseRepository[ModelType] works
# with any mapped model while keeping return types precise.
ModelType = TypeVar("ModelType", bound=DeclarativeBase)

logger = get_logger(__name__)


# ============================================================================
# CUSTOM EXCEPTION HIERARCHY
# ============================================================================


class RepositoryError(Exception):
    """Base exception for all repository operations.

    Raised when database operations fail. NotFoundError and ConflictError
    inherit from this for more specific error handling.

    Example:
        try:
            grid = await repo.create(name="Web", slug="web")
        except RepositoryError as e:
            logger.error("Database operation failed", error=str(e))
    """
    pass


class NotFoundError(RepositoryError):
    """Raised when a requested entity is not found.

    Only raised by the *_or_404 lookups. A web layer maps this to a 404.

    Example:
        try:
            grid = await repo.get_by_or_404(slug="web")
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Grid not found")
    """
    pass


class ConflictError(RepositoryError):
    """Raised when a write violates a storage constraint.

    Covers unique keys (duplicate slug, duplicate membership) and foreign
    keys (membership pointing at a missing package or grid).
    """
    pass


# ============================================================================
# BASE REPOSITORY - MAIN CRUD IMPLEMENTATION
# ============================================================================


class BaseRepository(Generic[ModelType]):
    """Generic repository class providing CRUD operations for any SQLAlchemy model.

    Entity repositories hold a BaseRepository instead of inheriting from it.

    Key Features:
    - GENERIC TYPE SAFETY: Works with any SQLAlchemy model via TypeVar
    - FLUSH SEMANTICS: create/insert/update flush, so generated ids are
      available, without committing the transaction
    - TRACING: OpenTelemetry integration via @trace_database decorators
    - STRUCTURED LOGGING: All operations logged with contextual information
    - ERROR HANDLING: SQLAlchemy errors become RepositoryError/ConflictError

    Args:
        session: AsyncSession for database communication
        model: SQLAlchemy model class (e.g., Grid, Package)

    Example (Composition Pattern):
        class GridRepository:
            def __init__(self, session: AsyncSession) -> None:
                self._base_repo = BaseRepository(session, Grid)

            async def get(self, grid_id: int) -> Optional[Grid]:
                return await self._base_repo.get(grid_id)
    """

    def __init__(self, session: AsyncSession, model: type[ModelType]) -> None:
        self._session = session
        self._model = model
        self._logger = get_logger(f"{__name__}.{model.__name__}Repository")

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _raise_write_error(self, action: str, e: SQLAlchemyError) -> NoReturn:
        self._logger.error(
            f"Failed to {action} entity",
            model=self._model.__name__,
            error=str(e)
        )
        if isinstance(e, IntegrityError):
            raise ConflictError(f"Entity conflicts with existing data: {e}") from e
        raise RepositoryError(f"Failed to {action} entity: {e}") from e

    # ========================================================================
    # CREATE OPERATIONS
    # ========================================================================

    @trace_database()
    async def insert(self, entity: ModelType) -> ModelType:
        """Add an already-built entity and flush it.

        Args:
            entity: Transient model instance

        Returns:
            The same instance with generated fields (id, timestamps) populated

        Raises:
            ConflictError: If the insert violates a constraint
            RepositoryError: For other database errors
        """
        try:
            self._logger.debug("Inserting entity", model=self._model.__name__)

            self._session.add(entity)
            await self._session.flush()
            await self._session.refresh(entity)

            self._logger.info(
                "Entity created successfully",
                model=self._model.__name__,
                entity_id=getattr(entity, "id", None)
            )
            return entity

        except SQLAlchemyError as e:
            self._raise_write_error("create", e)

    async def create(self, **kwargs: Any) -> ModelType:
        """Create a new entity from attributes and return it.

        Example:
            grid = await repo.create(name="Web", slug="web")
            # grid.id is now populated
        """
        return await self.insert(self._model(**kwargs))

    # ========================================================================
    # READ OPERATIONS (GET)
    # ========================================================================

    @trace_database()
    async def get(self, entity_id: int) -> Optional[ModelType]:
        """Get entity by primary key.

        Returns:
            Entity instance if found, None if not found

        Raises:
            RepositoryError: For database errors
        """
        return await self.get_by(id=entity_id)

    async def get_or_404(self, entity_id: int) -> ModelType:
        """Get entity by primary key, raising NotFoundError if not found."""
        entity = await self.get(entity_id)
        if entity is None:
            raise NotFoundError(f"{self._model.__name__} with id {entity_id} not found")
        return entity

    @trace_database()
    async def get_by(self, **criteria: Any) -> Optional[ModelType]:
        """Get the single entity matching column equality criteria.

        Example:
            grid = await repo.get_by(slug="web")
        """
        try:
            self._logger.debug(
                "Getting entity",
                model=self._model.__name__,
                criteria=criteria
            )

            query = select(self._model).filter_by(**criteria)
            result = await self._session.execute(query)
            entity = result.scalar_one_or_none()

            self._logger.debug(
                "Entity found" if entity is not None else "Entity not found",
                model=self._model.__name__,
                criteria=criteria
            )
            return entity

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to get entity",
                model=self._model.__name__,
                criteria=criteria,
                error=str(e)
            )
            raise RepositoryError(f"Failed to get entity: {e}") from e

    async def get_by_or_404(self, **criteria: Any) -> ModelType:
        """Like get_by(), raising NotFoundError when nothing matches."""
        entity = await self.get_by(**criteria)
        if entity is None:
            rendered = ", ".join(f"{key}={value!r}" for key, value in criteria.items())
            raise NotFoundError(f"{self._model.__name__} with {rendered} not found")
        return entity

    @trace_database()
    async def exists(self, *criteria: ColumnElement[bool]) -> bool:
        """Check whether any row matches the given SQL criteria."""
        try:
            query = select(func.count()).select_from(self._model).where(*criteria)
            result = await self._session.execute(query)
            return (result.scalar() or 0) > 0
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to check entity existence",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to check entity existence: {e}") from e

    # ========================================================================
    # UPDATE OPERATION
    # ========================================================================

    @trace_database()
    async def save(self, entity: ModelType) -> ModelType:
        """Flush pending attribute changes on a persistent entity.

        Raises:
            ConflictError: If the update violates a constraint
            RepositoryError: For other database errors
        """
        try:
            self._session.add(entity)
            await self._session.flush()

            self._logger.info(
                "Entity updated successfully",
                model=self._model.__name__,
                entity_id=getattr(entity, "id", None)
            )
            return entity

        except SQLAlchemyError as e:
            self._raise_write_error("update", e)

    async def update(self, entity_id: int, **kwargs: Any) -> Optional[ModelType]:
        """Update entity by primary key.

        Returns:
            Updated entity instance or None if entity not found

        Example:
            package = await repo.update(package_id, latest_version="1.7.0")
        """
        entity = await self.get(entity_id)
        if entity is None:
            self._logger.debug(
                "Entity not found for update",
                model=self._model.__name__,
                entity_id=entity_id
            )
            return None

        for key, value in kwargs.items():
            setattr(entity, key, value)
        return await self.save(entity)

    # ========================================================================
    # DELETE OPERATIONS
    # ========================================================================

    @trace_database()
    async def delete_where(self, *criteria: ColumnElement[bool]) -> int:
        """Issue a single DELETE for all rows matching the criteria.

        Returns:
            Number of rows deleted

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = delete(self._model).where(*criteria)
            result = await self._session.execute(query)
            deleted = int(getattr(result, "rowcount", 0) or 0)

            self._logger.info(
                "Deleted entities",
                model=self._model.__name__,
                deleted=deleted
            )
            return deleted

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to delete entities",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to delete entity: {e}") from e

    async def delete(self, entity_id: int) -> bool:
        """Delete entity by primary key with one DELETE statement.

        Returns:
            True if a row was deleted, False if none matched
        """
        id_column = getattr(self._model, "id")
        return await self.delete_where(id_column == entity_id) == 1

    # ========================================================================
    # LIST / COUNT OPERATIONS
    # ========================================================================

    @trace_database()
    async def list(self, *order_by: ColumnElement[Any]) -> list[ModelType]:
        """Return every entity, optionally ordered.

        Without an explicit ordering the storage order is used.

        Example:
            grids = await repo.list(Grid.name.asc())
        """
        try:
            query = select(self._model)
            if order_by:
                query = query.order_by(*order_by)

            result = await self._session.execute(query)
            items = list(result.scalars().all())

            self._logger.debug(
                "Listed entities successfully",
                model=self._model.__name__,
                count=len(items)
            )
            return items

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to list entities",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to list entities: {e}") from e

    @trace_database()
    async def count(self) -> int:
        """Count total entities."""
        try:
            result = await self._session.execute(
                select(func.count()).select_from(self._model)
            )
            return result.scalar() or 0
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to count entities",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to count entities: {e}") from e

    # ========================================================================
    # TRANSACTION MANAGEMENT
    # ========================================================================

    async def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            ConflictError: If a deferred constraint fails at commit time
            RepositoryError: If commit fails
        """
        try:
            await self._session.commit()
            self._logger.debug("Transaction committed", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._raise_write_error("commit", e)

    async def rollback(self) -> None:
        """Rollback the current transaction.

        Raises:
            RepositoryError: If rollback fails
        """
        try:
            await self._session.rollback()
            self._logger.debug("Transaction rolled back", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to rollback transaction",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to rollback transaction: {e}") from e
