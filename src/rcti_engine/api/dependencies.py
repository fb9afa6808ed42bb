"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rcti_engine.database import get_session


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session; one transaction per request."""
    async with get_session() as session:
        yield session


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
