"""
LanceDB connection management for the history similarity index.
"""

from asyncio import AbstractEventLoop, get_running_loop
from dataclasses import dataclass

import lancedb
import pyarrow as pa

from app.core.config import settings

__all__ = (
    "close_db",
    "get_db",
    "open_table",
)


@dataclass
class DBConnection:
    loop: AbstractEventLoop | None = None
    db: lancedb.AsyncConnection | None = None


_STATE = DBConnection()


async def get_db() -> lancedb.AsyncConnection:
    """One connection per event loop; reconnects if the loop changed or the handle closed."""
    loop = get_running_loop()
    state = _STATE

    if state.db is None or not state.db.is_open() or state.loop is not loop:
        if state.db is not None and state.db.is_open():
            state.db.close()
        state.db = await lancedb.connect_async(settings.VECTOR_STORE_PATH)
        state.loop = loop
    return state.db


async def open_table(name: str, schema: pa.Schema):
    """Open *name*, creating it empty with *schema* on first use."""
    db = await get_db()
    if name in await db.table_names():
        return await db.open_table(name)
    return await db.create_table(name, schema=schema, exist_ok=True)


async def close_db() -> None:
    state = _STATE
    if state.db is not None and state.db.is_open():
        state.db.close()
        state.db = None
        state.loop = None
