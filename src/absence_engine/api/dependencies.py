"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.database import init_db
from absence_engine.events import AsyncEventEmitter
from absence_engine.services.encryption import FieldCodec, get_field_codec


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _uuid_header(value: str | None, name: str) -> UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{name} header is required",
        )
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} format",
        )


async def get_organisation_id(
    x_organisation_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract organisation ID from header."""
    return _uuid_header(x_organisation_id, "X-Organisation-ID")


async def get_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the acting user's ID from header."""
    return _uuid_header(x_user_id, "X-User-ID")


def get_emitter(request: Request) -> AsyncEventEmitter:
    """Per-request emitter wired to the app's notification handler, if any."""
    emitter = AsyncEventEmitter()
    handler = getattr(request.app.state, "notification_handler", None)
    if handler is not None:
        handler.register(emitter)
    return emitter


def get_codec() -> FieldCodec:
    return get_field_codec()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
OrganisationId = Annotated[UUID, Depends(get_organisation_id)]
ActorId = Annotated[UUID, Depends(get_actor_id)]
Emitter = Annotated[AsyncEventEmitter, Depends(get_emitter)]
Codec = Annotated[FieldCodec, Depends(get_codec)]
