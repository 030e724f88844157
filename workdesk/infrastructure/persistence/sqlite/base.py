import asyncio
from typing import Any

from workdesk.db.session import DatabaseSessionManager


class SqliteBaseRepository:
    """Base repository for SQLite implementations."""

    def __init__(self, session_manager: DatabaseSessionManager | Any) -> None:
        self._session = session_manager

    async def _execute(
        self,
        operation: Any,
        *args: Any,
        operation_name: str = "repository_operation",
        **kwargs: Any,
    ) -> Any:
        """Run a blocking peewee operation in a worker thread inside a connection context."""
        if not hasattr(self._session, "connection_context"):
            msg = f"Unsupported session manager type for {operation_name}"
            raise TypeError(msg)

        def _op_wrapper() -> Any:
            session_any: Any = self._session
            with session_any.connection_context():
                return operation(*args, **kwargs)

        return await asyncio.to_thread(_op_wrapper)
