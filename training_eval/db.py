import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from . import config

logger = logging.getLogger(__name__)

TRAINING_SESSIONS = "training_sessions"
EVALUATIONS = "evaluations"
ADMINS = "admins"
AUTH_SESSIONS = "auth_sessions"

# table -> column stamped on insert
CREATED_COLUMNS = {
    TRAINING_SESSIONS: "created_at",
    EVALUATIONS: "submitted_at",
    ADMINS: "created_at",
    AUTH_SESSIONS: "created_at",
}

# child table -> (foreign key column, parent table, key the joined parent is stored under)
REFERENCES = {
    EVALUATIONS: ("training_session_id", TRAINING_SESSIONS, "training_session"),
}

Order = tuple[str, int]


class GatewayError(Exception):
    """Raised when the store rejects a request."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Gateway(ABC):
    """Record CRUD over named tables. Records are plain dicts with a string ``id``."""

    @abstractmethod
    async def insert(self, table: str, record: dict) -> dict: ...

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        join: Optional[str] = None,
        order: Optional[Order] = None,
    ) -> list[dict]: ...

    @abstractmethod
    async def select_one(self, table: str, filters: dict) -> Optional[dict]: ...

    @abstractmethod
    async def update(self, table: str, id: str, fields: dict) -> Optional[dict]: ...

    @abstractmethod
    async def delete(self, table: str, id: str) -> bool: ...


def now_utc():
    return datetime.now(timezone.utc)


def _as_utc(value):
    # Mongo hands back naive datetimes that are already UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def oid_to_str(doc: dict) -> dict:
    d = {k: _as_utc(v) for k, v in doc.items() if k != "_id"}
    if "_id" in doc:
        d["id"] = str(doc["_id"])
    return d


def _to_query(filters: Optional[dict]) -> Optional[dict]:
    """Translate ``id`` filters into ``_id`` ObjectId filters.

    Returns None when an id filter can never match (not a valid ObjectId).
    """
    query = dict(filters or {})
    if "id" in query:
        raw = query.pop("id")
        if not ObjectId.is_valid(raw):
            return None
        query["_id"] = ObjectId(raw)
    return query


class MongoGateway(Gateway):
    def __init__(self, database: AsyncIOMotorDatabase):
        self.db = database

    async def insert(self, table: str, record: dict) -> dict:
        doc = dict(record)
        doc.pop("id", None)
        column = CREATED_COLUMNS.get(table)
        if column:
            doc[column] = now_utc()
        try:
            await self._check_reference(table, doc)
            result = await self.db[table].insert_one(doc)
        except PyMongoError as e:
            logger.error("insert into %s failed: %s", table, e)
            raise GatewayError(str(e)) from e
        doc["_id"] = result.inserted_id
        return oid_to_str(doc)

    async def select(self, table, filters=None, join=None, order=None):
        query = _to_query(filters)
        if query is None:
            return []
        try:
            cursor = self.db[table].find(query)
            if order:
                cursor = cursor.sort(*order)
            rows = [oid_to_str(r) for r in await cursor.to_list(length=None)]
            if join:
                await self._attach_parents(table, join, rows)
        except PyMongoError as e:
            logger.error("select from %s failed: %s", table, e)
            raise GatewayError(str(e)) from e
        return rows

    async def select_one(self, table, filters):
        query = _to_query(filters)
        if query is None:
            return None
        try:
            row = await self.db[table].find_one(query)
        except PyMongoError as e:
            logger.error("select_one from %s failed: %s", table, e)
            raise GatewayError(str(e)) from e
        return oid_to_str(row) if row else None

    async def update(self, table, id, fields):
        if not ObjectId.is_valid(id):
            return None
        changes = {k: v for k, v in fields.items() if k != "id"}
        try:
            await self._check_reference(table, changes)
            row = await self.db[table].find_one_and_update(
                {"_id": ObjectId(id)},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("update of %s/%s failed: %s", table, id, e)
            raise GatewayError(str(e)) from e
        return oid_to_str(row) if row else None

    async def delete(self, table, id):
        if not ObjectId.is_valid(id):
            return False
        try:
            for child, (column, parent, _) in REFERENCES.items():
                if parent == table:
                    result = await self.db[child].delete_many({column: id})
                    if result.deleted_count:
                        logger.info("cascade removed %d rows from %s", result.deleted_count, child)
            result = await self.db[table].delete_one({"_id": ObjectId(id)})
        except PyMongoError as e:
            logger.error("delete of %s/%s failed: %s", table, id, e)
            raise GatewayError(str(e)) from e
        return result.deleted_count == 1

    async def _check_reference(self, table: str, doc: dict):
        if table not in REFERENCES:
            return
        column, parent, _ = REFERENCES[table]
        if column not in doc:
            return
        parent_id = doc[column]
        exists = ObjectId.is_valid(parent_id) and await self.db[parent].count_documents(
            {"_id": ObjectId(parent_id)}, limit=1
        )
        if not exists:
            raise GatewayError(
                f'insert or update on table "{table}" violates foreign key constraint on "{column}"'
            )

    async def _attach_parents(self, table: str, join: str, rows: Sequence[dict]):
        if table not in REFERENCES or REFERENCES[table][1] != join:
            raise GatewayError(f'no relationship between "{table}" and "{join}"')
        column, parent, key = REFERENCES[table]
        ids = {r[column] for r in rows if ObjectId.is_valid(r.get(column, ""))}
        parents = {}
        if ids:
            cursor = self.db[parent].find({"_id": {"$in": [ObjectId(i) for i in ids]}})
            parents = {str(p["_id"]): oid_to_str(p) for p in await cursor.to_list(length=None)}
        for r in rows:
            r[key] = parents.get(r.get(column))


client = AsyncIOMotorClient(config.MONGO_URI)
db = client[config.DB_NAME]

training_sessions = db[TRAINING_SESSIONS]
evaluations = db[EVALUATIONS]
admins = db[ADMINS]
auth_sessions = db[AUTH_SESSIONS]

gateway = MongoGateway(db)


async def ensure_indexes():
    await training_sessions.create_index([("training_id", 1), ("batch_id", 1)])
    await training_sessions.create_index([("created_at", -1)])
    await evaluations.create_index([("training_session_id", 1), ("submitted_at", -1)])
    await admins.create_index([("email", 1)], unique=True)
    await auth_sessions.create_index([("token", 1)], unique=True)
    await auth_sessions.create_index([("expires_at", 1)], expireAfterSeconds=0)
