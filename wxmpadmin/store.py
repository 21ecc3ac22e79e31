"""MongoDB access: the connection, index checks and the generic model layer."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

import pymongo
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_MS = 6000
SERVER_SELECTION_TIMEOUT_MS = 10000
MAX_POOL_SIZE = 10
COUNTERS_COLLECTION = "counters"

_NOT_DELETED = {"$exists": False}


@dataclass
class MongoConfig:
    """Connection settings of the database server."""

    username: str
    password: str
    host: str
    database: str

    @classmethod
    def from_env(cls) -> "MongoConfig":
        """Read the settings from MONGO_USER, MONGO_PASSWORD, MONGO_HOST and MONGO_DB."""
        return cls(
            username=os.environ.get("MONGO_USER", ""),
            password=os.environ.get("MONGO_PASSWORD", ""),
            host=os.environ.get("MONGO_HOST", ""),
            database=os.environ.get("MONGO_DB", ""),
        )

    def client_kwargs(self) -> dict[str, Any]:
        """Return the keyword arguments for a pymongo client."""
        kwargs: dict[str, Any] = {
            "host": [self.host] if self.host else None,
            "connectTimeoutMS": CONNECT_TIMEOUT_MS,
            "serverSelectionTimeoutMS": SERVER_SELECTION_TIMEOUT_MS,
            "maxPoolSize": MAX_POOL_SIZE,
        }
        if self.username:
            kwargs["username"] = self.username
            kwargs["password"] = self.password
            kwargs["authSource"] = self.database
        return kwargs


class MongoClient:
    """A connection bound to one database, able to reconnect."""

    def __init__(
        self,
        client: Any,
        database_name: str,
        factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._client = client
        self._database_name = database_name
        self._factory = factory
        self._lock = threading.RLock()

    @property
    def database_name(self) -> str:
        return self._database_name

    def get_database(self, db_name: str) -> Any:
        return self._client.get_database(db_name)

    def get_collection(self, collection_name: str) -> Any:
        """Return a handle on a collection of the bound database."""
        if not self._database_name:
            raise RuntimeError("database not initialized")
        with self._lock:
            return self._client.get_database(self._database_name).get_collection(
                collection_name
            )

    def reconnect(self) -> None:
        """Close the connection and open a new one to the same database."""
        if self._factory is None:
            raise RuntimeError("no way to reconnect: client has no factory")
        with self._lock:
            self._client.close()
            try:
                self._client = self._factory()
            except PyMongoError as exc:
                logger.error("failed to reconnect to MongoDB: %s", exc)
                raise
            logger.info("reconnected to MongoDB successfully")

    def disconnect(self) -> None:
        """Close the connection."""
        with self._lock:
            self._client.close()

    def health_check(self) -> bool:
        """Return whether the server answers a ping."""
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("MongoDB is not healthy: %s", exc)
            return False
        return True


_instance: Optional[MongoClient] = None
_instance_lock = threading.Lock()


def connect(config: Optional[MongoConfig] = None) -> MongoClient:
    """Return the shared connection, opening and pinging it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            cfg = config or MongoConfig.from_env()

            def factory() -> Any:
                return pymongo.MongoClient(**cfg.client_kwargs())

            raw = factory()
            try:
                raw.admin.command("ping")
            except PyMongoError:
                raw.close()
                raise
            _instance = MongoClient(raw, cfg.database, factory)
            logger.info("MongoDB connection established")
        return _instance


def get_collection_indexes(collection: Any) -> list[Mapping[str, Any]]:
    """Return the index descriptions of a collection."""
    return list(collection.list_indexes())


def _is_unique(index: Mapping[str, Any]) -> bool:
    return index.get("unique") is True


def check_collection_index_exists(
    indexes: Iterable[Mapping[str, Any]], field_name: str, check_unique: bool = False
) -> bool:
    """Return whether a single-field index on ``field_name`` exists."""
    for index in indexes:
        keys = index.get("key")
        if isinstance(keys, Mapping) and len(keys) == 1 and field_name in keys:
            if not check_unique or _is_unique(index):
                return True
    return False


def check_collection_compound_index_exists(
    indexes: Iterable[Mapping[str, Any]], field_names: Iterable[str], check_unique: bool = False
) -> bool:
    """Return whether an index on exactly these fields exists, in any order."""
    names = list(field_names)
    for index in indexes:
        keys = index.get("key")
        if isinstance(keys, Mapping) and len(keys) == len(names):
            if all(name in keys for name in names):
                if not check_unique or _is_unique(index):
                    return True
    return False


ModelInitFunc = Callable[[MongoClient], None]

_model_init_funcs: list[ModelInitFunc] = []
_mongo_client: Optional[MongoClient] = None


def add_model_init_func(func: ModelInitFunc) -> ModelInitFunc:
    """Register a function run by init_mongodb; usable as a decorator."""
    _model_init_funcs.append(func)
    return func


def init_model_base(client: Optional[MongoClient]) -> None:
    """Set the connection the models use."""
    global _mongo_client
    logger.info("init mongodb model base")
    _mongo_client = client


def init_mongodb(client: Optional[MongoClient] = None) -> MongoClient:
    """Bind the models to a connection and run every registered model init function."""
    if client is None:
        client = connect()
    init_model_base(client)
    for func in _model_init_funcs:
        func(client)
    return client


def _current_client() -> MongoClient:
    if _mongo_client is None:
        raise RuntimeError("mongodb models are not initialized")
    return _mongo_client


def _now() -> datetime:
    return datetime.now(timezone.utc)


def doc_field(
    key: Optional[str] = None,
    default: Any = None,
    *,
    omitempty: bool = False,
    default_factory: Optional[Callable[[], Any]] = None,
) -> Any:
    """Declare an entity field stored under ``key`` (the field name if not given)."""
    metadata = {"bson": key, "omitempty": omitempty}
    if default_factory is not None:
        return field(default_factory=default_factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class Entity:
    """Fields kept on every stored document."""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = doc_field(omitempty=True)
    deleted_at: Optional[datetime] = doc_field(omitempty=True)

    @staticmethod
    def _key(f: Any) -> str:
        return f.metadata.get("bson") or f.name

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Entity":
        """Build an entity from a stored document, ignoring unknown keys."""
        values = {
            f.name: doc[cls._key(f)] for f in fields(cls) if f.init and cls._key(f) in doc
        }
        return cls(**values)

    def to_document(self) -> dict[str, Any]:
        """Return the document to store, leaving out empty omittable fields."""
        doc: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and f.metadata.get("omitempty"):
                continue
            doc[self._key(f)] = value
        return doc


E = TypeVar("E", bound=Entity)


def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise ValueError(f"invalid object id: {value!r}") from exc


def _live(filter: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    return {**(filter or {}), "deleted_at": _NOT_DELETED}


def _merge(update: Optional[Mapping[str, Any]], operator: str, values: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(update or {})
    merged[operator] = {**dict(merged.get(operator) or {}), **values}
    return merged


class ModelBase(Generic[E]):
    """Operations on one collection whose documents map to ``entity_cls``."""

    def __init__(self, collection_name: str, entity_cls: type[E]) -> None:
        self.collection_name = collection_name
        self.entity_cls = entity_cls

    @property
    def collection(self) -> Any:
        return _current_client().get_collection(self.collection_name)

    def _entity(self, doc: Optional[Mapping[str, Any]]) -> Optional[E]:
        return None if doc is None else self.entity_cls.from_document(doc)

    def new_entity(self) -> E:
        return self.entity_cls()

    def get_next_id(self) -> int:
        """Increment and return this collection's sequence counter."""
        counters = _current_client().get_collection(COUNTERS_COLLECTION)
        result = counters.find_one_and_update(
            {"_id": f"{self.collection_name}_id"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        if result is None:
            raise LookupError("no documents in result")
        return int(result["seq"])

    def find_by_id(self, id: str) -> Optional[E]:
        """Return the live document with this hex id, or None."""
        collection = self.collection
        filter = _live({"_id": _object_id(id)})
        return self._entity(collection.find_one(filter))

    def find_one(self, filter: Optional[Mapping[str, Any]] = None) -> Optional[E]:
        """Return the first live document matching the filter, or None."""
        return self._entity(self.collection.find_one(_live(filter)))

    def find_one_and_update(
        self,
        filter: Optional[Mapping[str, Any]],
        update: Optional[Mapping[str, Any]],
        upsert: bool = False,
    ) -> E:
        """Update a live document, inserting it if ``upsert``; return the new version."""
        now = _now()
        full_update = _merge(_merge(update, "$set", {"updated_at": now}), "$setOnInsert", {"created_at": now})
        doc = self.collection.find_one_and_update(
            _live(filter),
            full_update,
            upsert=upsert,
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise LookupError("no documents in result")
        return self.entity_cls.from_document(doc)

    def find_many(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[list[tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[E]:
        """Return the live documents matching the filter."""
        cursor = self.collection.find(_live(filter), sort=sort, skip=skip, limit=limit)
        return [self.entity_cls.from_document(doc) for doc in cursor]

    def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Return the number of live documents matching the filter."""
        return int(self.collection.count_documents(_live(filter)))

    def _prepare(self, doc: E) -> dict[str, Any]:
        if doc.created_at is None:
            doc.created_at = _now()
        return doc.to_document()

    def insert_one(self, doc: E) -> str:
        """Insert an entity and return its new id as hex."""
        collection = self.collection
        result = collection.insert_one(self._prepare(doc))
        inserted = result.inserted_id
        if not isinstance(inserted, ObjectId):
            raise ValueError("invalid inserted id")
        return str(inserted)

    def insert_many(self, docs: Iterable[E]) -> list[str]:
        """Insert entities and return their new ids as hex."""
        collection = self.collection
        result = collection.insert_many([self._prepare(doc) for doc in docs])
        ids = []
        for inserted in result.inserted_ids:
            if not isinstance(inserted, ObjectId):
                raise ValueError("invalid inserted id")
            ids.append(str(inserted))
        return ids

    def update_one(self, filter: Optional[Mapping[str, Any]], update: Optional[Mapping[str, Any]]) -> Any:
        """Update the first live matching document."""
        return self.collection.update_one(_live(filter), _merge(update, "$set", {"updated_at": _now()}))

    def update_by_id(self, object_id: str, update: Optional[Mapping[str, Any]]) -> Any:
        """Update the document with this hex id."""
        collection = self.collection
        full_update = _merge(update, "$set", {"updated_at": _now()})
        return collection.update_one({"_id": _object_id(object_id)}, full_update)

    def update_many(self, filter: Optional[Mapping[str, Any]], update: Optional[Mapping[str, Any]]) -> Any:
        """Update every live matching document."""
        return self.collection.update_many(_live(filter), _merge(update, "$set", {"updated_at": _now()}))

    def delete_one(self, filter: Optional[Mapping[str, Any]]) -> int:
        """Delete one matching document; an empty filter is refused."""
        collection = self.collection
        if not filter:
            raise ValueError("filter is empty")
        return int(collection.delete_one(dict(filter)).deleted_count)

    def delete_by_id(self, id: str) -> Any:
        """Delete the document with this hex id."""
        collection = self.collection
        return collection.delete_one({"_id": _object_id(id)})

    def delete_many(self, filter: Optional[Mapping[str, Any]]) -> int:
        """Delete every matching document; an empty filter is refused."""
        collection = self.collection
        if not filter:
            raise ValueError("filter is empty")
        return int(collection.delete_many(dict(filter)).deleted_count)