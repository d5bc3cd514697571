import asyncio
from typing import Any, Callable, TypeVar

import lancedb
from lancedb.pydantic import pydantic_to_schema
import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import StoreUnavailable
from rentalscout.core.retry import call_with_retry
from rentalscout.db.schemas import ListingRow

logger = structlog.get_logger()

T = TypeVar("T")


class LanceDBHandle:
    """Explicit connection handle; components receive it rather than a global."""

    def __init__(
        self,
        uri: str | None = None,
        table_name: str | None = None,
        timeout: float | None = None,
        attempts: int | None = None,
        backoff: float | None = None,
    ):
        self.uri = uri or settings.LANCEDB_URI
        self.table_name = table_name or settings.LISTINGS_TABLE
        self.timeout = settings.STORE_TIMEOUT if timeout is None else timeout
        self.attempts = settings.MAX_RETRIES if attempts is None else attempts
        self.backoff = settings.RETRY_BACKOFF if backoff is None else backoff
        self._db = None

    def acquire(self) -> "LanceDBHandle":
        if self._db is None:
            logger.info("Connecting to LanceDB", uri=self.uri)
            self._db = lancedb.connect(self.uri)
        return self

    def release(self) -> None:
        if self._db is not None:
            logger.info("Releasing LanceDB handle", uri=self.uri)
            self._db = None

    async def __aenter__(self) -> "LanceDBHandle":
        return self.acquire()

    async def __aexit__(self, *exc) -> None:
        self.release()

    @property
    def db(self):
        if self._db is None:
            raise RuntimeError("LanceDB handle used before acquire()")
        return self._db

    def get_table(self):
        # Opens the table when it exists; schema is derived from the flat pydantic row model
        schema = pydantic_to_schema(ListingRow)
        return self.db.create_table(self.table_name, schema=schema, exist_ok=True)

    def reset_table(self):
        """Drop and recreate the listings table (ingestion only)."""
        self.db.drop_table(self.table_name, ignore_missing=True)
        logger.info("Dropped existing table", table=self.table_name)
        return self.get_table()

    async def run(self, fn: Callable[[Any], T], operation: str) -> T:
        """Run a blocking table operation in a worker thread.

        ``fn`` receives the opened table. Timeouts and I/O errors are retried;
        once the budget is spent the failure surfaces as ``StoreUnavailable``.
        """
        loop = asyncio.get_running_loop()

        async def attempt() -> T:
            return await loop.run_in_executor(None, lambda: fn(self.get_table()))

        try:
            return await call_with_retry(
                attempt,
                attempts=self.attempts,
                backoff=self.backoff,
                timeout=self.timeout,
                retry_on=(OSError,),
                operation=operation,
            )
        except (asyncio.TimeoutError, OSError) as e:
            logger.error("Listing store unavailable", operation=operation, error=repr(e))
            raise StoreUnavailable(f"Listing store unavailable during {operation}") from e
