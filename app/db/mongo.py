# app/db/mongo.py
from contextlib import contextmanager
from enum import Enum
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
import certifi

from app.core.config import get_settings
from app.domain.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    assert _client is not None, "Mongo client not initialized"
    return _client


def get_db() -> AsyncIOMotorDatabase:
    assert _db is not None, "Mongo DB not initialized"
    return _db


def _new_client(settings) -> AsyncIOMotorClient:
    kwargs = dict(
        uuidRepresentation="standard",
        tz_aware=True,                      # all engine timestamps are UTC-aware
        serverSelectionTimeoutMS=6000,
        connectTimeoutMS=6000,
    )
    if settings.MONGO_TLS:
        kwargs.update(tls=True, tlsCAFile=certifi.where())
    return AsyncIOMotorClient(settings.MONGO_URI, **kwargs)


async def connect():
    """
    Create the Motor client.
    Do not crash the app if the initial ping fails: keep a lazy client so
    requests can retry once the network is OK.
    """
    global _client, _db
    settings = get_settings()

    _client = _new_client(settings)
    _db = _client[settings.MONGO_DB]
    try:
        await _client.admin.command("ping")
        logger.info("Mongo connected (ping ok) db=%s", settings.MONGO_DB)
    except PyMongoError as e:
        logger.warning("Mongo ping at startup failed, will connect lazily: %s", e)


async def disconnect():
    global _client, _db
    if _client:
        _client.close()
    _client = None
    _db = None


@contextmanager
def upstream(what: str):
    """Re-raise driver errors as UpstreamUnavailable so callers see one error type."""
    try:
        yield
    except PyMongoError as e:
        logger.warning("mongo %s failed: %s", what, e)
        raise UpstreamUnavailable(f"{what}: {e}") from e


def to_document(model) -> dict:
    """pydantic model -> BSON-ready dict (datetimes kept native, enums as plain values)."""
    def _plain(v):
        if isinstance(v, Enum):
            return v.value
        if isinstance(v, dict):
            return {k: _plain(x) for k, x in v.items()}
        if isinstance(v, (list, tuple)):
            return [_plain(x) for x in v]
        return v
    return _plain(model.model_dump(mode="python"))
