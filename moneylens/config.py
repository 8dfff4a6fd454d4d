"""Runtime configuration.

Settings come from environment variables, optionally loaded from a ``.env``
file in the working directory.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from moneylens.core.store_client import DEFAULT_TIMEOUT, StoreClient

load_dotenv()


class Settings(BaseModel):
    store_url: str = Field(..., min_length=1, description="Base URL of the store project")
    store_key: str = Field(..., min_length=1, description="API key sent to the store")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    horizon_months: int = Field(default=12, ge=1, le=600)


def load_settings() -> Settings:
    """Read settings from the environment.

    Raises ``RuntimeError`` naming the first missing required variable.
    """
    url = os.environ.get("MONEYLENS_STORE_URL", "")
    key = os.environ.get("MONEYLENS_STORE_KEY", "")

    if not url:
        raise RuntimeError(
            "MONEYLENS_STORE_URL environment variable is required. "
            "Set it to your project's base URL."
        )
    if not key:
        raise RuntimeError("MONEYLENS_STORE_KEY environment variable is required.")

    return Settings(
        store_url=url,
        store_key=key,
        timeout=float(os.environ.get("MONEYLENS_TIMEOUT", DEFAULT_TIMEOUT)),
        horizon_months=int(os.environ.get("MONEYLENS_HORIZON_MONTHS", 12)),
    )


@asynccontextmanager
async def open_store(settings: Settings | None = None) -> AsyncIterator[StoreClient]:
    """Yield a connected :class:`StoreClient`, closing it on exit."""
    settings = settings or load_settings()
    client = StoreClient(settings.store_url, settings.store_key, timeout=settings.timeout)
    try:
        yield client
    finally:
        await client.close()
