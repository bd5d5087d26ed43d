"""
Entity store

Generic create / get / update / delete / list over the MongoDB collections
described by ``EntityDefinition`` objects. Every write goes through the
same visible steps:

1. schema validation (pydantic)
2. immutable / append-only checks (updates only)
3. reference resolution (slugs, hierarchy, review target, order statuses)
4. denormalized counter recomputation
5. uniqueness pre-check
6. the write itself

The pre-check in step 5 only saves a round trip; the unique indexes
created by ``ensure_indexes`` are what actually settle races.
"""
import logging
import re
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from counters import apply
from database import as_utc, get_path, now_utc, serialize_doc
from errors import (APPEND_ONLY, DUPLICATE, IMMUTABLE_FIELD, INVALID_VALUE, LENGTH_BOUND, REQUIRED_FIELD,
                    NotFound, StoreUnavailable, ValidationError)
from virtuals import with_virtuals

logger = logging.getLogger(__name__)

META_FIELDS = ("_id", "id", "created_at", "updated_at")
DEFAULT_LIMIT = 50

_LENGTH_ERRORS = {"string_too_short", "string_too_long", "too_short", "too_long"}
_INDEX_NAME = re.compile(r"index: (\S+)")

SortSpec = Union[None, str, Sequence[Tuple[str, int]]]
Resolver = Callable[["EntityStore", Dict[str, Any], Optional[Dict[str, Any]]], None]


class EntityDefinition:
    """How one entity type is validated, derived, indexed and serialized."""

    def __init__(
        self,
        name: str,
        schema: Type[BaseModel],
        unique: Iterable[str] = (),
        immutable: Iterable[str] = (),
        append_only: Iterable[str] = (),
        hidden: Iterable[str] = (),
        resolve: Optional[Resolver] = None,
        recompute: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
        indexes: Iterable[Tuple[List[Tuple[str, int]], Dict[str, Any]]] = (),
    ):
        self.name = name
        self.collection = name
        self.schema = schema
        self.unique = tuple(unique)
        self.immutable = tuple(immutable)
        self.append_only = tuple(append_only)
        self.hidden = tuple(hidden)
        self.resolve = resolve
        self.recompute = recompute
        self.indexes = list(indexes)


def _schema_failure(exc: SchemaError) -> ValidationError:
    errors = []
    for error in exc.errors():
        if error["type"] == "missing":
            kind = REQUIRED_FIELD
        elif error["type"] in _LENGTH_ERRORS:
            kind = LENGTH_BOUND
        else:
            kind = INVALID_VALUE
        errors.append({
            "field": ".".join(str(part) for part in error["loc"]),
            "kind": kind,
            "message": error["msg"],
        })
    first = errors[0]
    return ValidationError(first["kind"], first["field"], f"{first['field']}: {first['message']}", errors)


def _duplicate_field(exc: DuplicateKeyError) -> str:
    pattern = (exc.details or {}).get("keyPattern") or {}
    if pattern:
        return next(iter(pattern))
    match = _INDEX_NAME.search(str(exc))
    return match.group(1) if match else "unknown"


def _comparable(value: Any) -> Any:
    # mongo keeps millisecond precision and may hand datetimes back naive
    if isinstance(value, datetime):
        value = as_utc(value)
        return value.replace(microsecond=value.microsecond // 1000 * 1000)
    if isinstance(value, dict):
        return {k: _comparable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_comparable(v) for v in value]
    return value


def sort_spec(sort: SortSpec) -> Optional[List[Tuple[str, int]]]:
    """``"-created_at,name"`` or ``[("created_at", -1)]`` -> pymongo sort list."""
    if not sort:
        return None
    if isinstance(sort, str):
        spec = []
        for key in sort.split(","):
            key = key.strip()
            if key:
                spec.append((key[1:], -1) if key.startswith("-") else (key, 1))
        return spec or None
    return [(key, direction) for key, direction in sort]


class EntityStore:
    def __init__(self, db: Database, definitions: Dict[str, EntityDefinition]):
        self._db = db
        self._definitions = definitions

    # ---------------------------------
    # plumbing
    # ---------------------------------

    def definition(self, entity_type: str) -> EntityDefinition:
        try:
            return self._definitions[entity_type]
        except KeyError:
            raise ValueError(f"Unknown entity type: {entity_type}")

    def _collection(self, entity_type: str):
        return self._db[self.definition(entity_type).collection]

    @contextmanager
    def _guard(self):
        try:
            yield
        except DuplicateKeyError as exc:
            field = _duplicate_field(exc)
            raise ValidationError(DUPLICATE, field, f"{field} already exists") from exc
        except ConnectionFailure as exc:
            logger.error("Database unreachable: %s", exc)
            raise StoreUnavailable(str(exc)) from exc

    @staticmethod
    def _object_id(entity_type: str, entity_id: Any) -> ObjectId:
        if isinstance(entity_id, ObjectId):
            return entity_id
        try:
            return ObjectId(str(entity_id))
        except (InvalidId, TypeError):
            raise NotFound(entity_type, entity_id)

    def _serialize(self, entity_type: str, doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is None:
            return None
        return with_virtuals(entity_type, serialize_doc(doc, self.definition(entity_type).hidden))

    # ---------------------------------
    # reads
    # ---------------------------------

    def load(self, entity_type: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        """Raw stored document or None; malformed ids simply match nothing."""
        try:
            oid = self._object_id(entity_type, entity_id)
        except NotFound:
            return None
        with self._guard():
            return self._collection(entity_type).find_one({"_id": oid})

    def exists(self, entity_type: str, entity_id: Any) -> bool:
        return self.load(entity_type, entity_id) is not None

    def get(self, entity_type: str, entity_id: Any) -> Dict[str, Any]:
        doc = self.load(entity_type, entity_id)
        if doc is None:
            raise NotFound(entity_type, entity_id)
        return self._serialize(entity_type, doc)

    def find_raw(self, entity_type: str, filter: Optional[Dict[str, Any]] = None, sort: SortSpec = None,
                 limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        with self._guard():
            cursor = self._collection(entity_type).find(filter or {})
            spec = sort_spec(sort)
            if spec:
                cursor = cursor.sort(spec)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    def list(self, entity_type: str, filter: Optional[Dict[str, Any]] = None, sort: SortSpec = None,
             limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return [self._serialize(entity_type, doc) for doc in self.find_raw(entity_type, filter, sort, limit)]

    def find_one(self, entity_type: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._guard():
            doc = self._collection(entity_type).find_one(filter)
        return self._serialize(entity_type, doc)

    # ---------------------------------
    # writes
    # ---------------------------------

    def _validate(self, definition: EntityDefinition, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return definition.schema.model_validate(data).model_dump()
        except SchemaError as exc:
            raise _schema_failure(exc) from exc

    def _check_immutable(self, definition: EntityDefinition, current: Dict[str, Any],
                         doc: Dict[str, Any], patch: Dict[str, Any]) -> None:
        for field in definition.immutable:
            if field in patch and _comparable(doc.get(field)) != _comparable(current.get(field)):
                raise ValidationError(IMMUTABLE_FIELD, field, f"{field} cannot be changed once set")

    def _check_append_only(self, definition: EntityDefinition, current: Dict[str, Any],
                           doc: Dict[str, Any]) -> None:
        for field in definition.append_only:
            before = _comparable(current.get(field) or [])
            after = _comparable(doc.get(field) or [])
            if after[:len(before)] != before:
                raise ValidationError(APPEND_ONLY, field, f"{field} entries can be added but not changed or removed")

    def _check_unique(self, definition: EntityDefinition, doc: Dict[str, Any]) -> None:
        collection = self._db[definition.collection]
        for field in definition.unique:
            value = get_path(doc, field)
            if value is None or value == "" or value == []:
                continue
            if isinstance(value, list):
                if len(set(value)) != len(value):
                    raise ValidationError(DUPLICATE, field, f"{field} values must be distinct")
                query = {field: {"$in": value}}
            else:
                query = {field: value}
            query["_id"] = {"$ne": doc["_id"]}
            with self._guard():
                clash = collection.find_one(query, {"_id": 1})
            if clash is not None:
                raise ValidationError(DUPLICATE, field, f"{field} already exists: {value}")

    def _prepare(self, definition: EntityDefinition, doc: Dict[str, Any],
                 previous: Optional[Dict[str, Any]]) -> None:
        if definition.resolve is not None:
            definition.resolve(self, doc, previous)
        if definition.recompute is not None:
            apply(doc, definition.recompute(doc))
        self._check_unique(definition, doc)

    def create(self, entity_type: str, draft: Dict[str, Any]) -> Dict[str, Any]:
        definition = self.definition(entity_type)
        doc = self._validate(definition, {k: v for k, v in draft.items() if k not in META_FIELDS})
        doc["_id"] = ObjectId()
        self._prepare(definition, doc, None)
        doc["created_at"] = doc["updated_at"] = now_utc()
        with self._guard():
            self._collection(entity_type).insert_one(doc)
        logger.info("Created %s %s", entity_type, doc["_id"])
        return self._serialize(entity_type, doc)

    def update(self, entity_type: str, entity_id: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Top-level partial merge: fields in ``patch`` replace stored values wholesale."""
        definition = self.definition(entity_type)
        current = self.load(entity_type, entity_id)
        if current is None:
            raise NotFound(entity_type, entity_id)
        patch = {k: v for k, v in patch.items() if k not in META_FIELDS}
        merged = {k: v for k, v in current.items() if k not in META_FIELDS}
        merged.update(patch)

        doc = self._validate(definition, merged)
        self._check_immutable(definition, current, doc, patch)
        self._check_append_only(definition, current, doc)
        doc["_id"] = current["_id"]
        self._prepare(definition, doc, current)
        doc["created_at"] = current.get("created_at")
        doc["updated_at"] = now_utc()
        with self._guard():
            result = self._collection(entity_type).replace_one({"_id": current["_id"]}, doc)
        if result.matched_count == 0:
            raise NotFound(entity_type, entity_id)
        logger.info("Updated %s %s (%s)", entity_type, current["_id"], ", ".join(sorted(patch)) or "no fields")
        return self._serialize(entity_type, doc)

    def delete(self, entity_type: str, entity_id: Any) -> None:
        oid = self._object_id(entity_type, entity_id)
        with self._guard():
            result = self._collection(entity_type).delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFound(entity_type, entity_id)
        logger.info("Deleted %s %s", entity_type, oid)

    def _update_one(self, entity_type: str, entity_id: Any, operation: Dict[str, Any]) -> None:
        oid = self._object_id(entity_type, entity_id)
        operation.setdefault("$set", {})["updated_at"] = now_utc()
        with self._guard():
            result = self._collection(entity_type).update_one({"_id": oid}, operation)
        if result.matched_count == 0:
            raise NotFound(entity_type, entity_id)

    # Targeted writes below bypass the pipeline; callers use them only for
    # derived fields and reference lists that need no validation.

    def increment(self, entity_type: str, entity_id: Any, deltas: Dict[str, float]) -> None:
        self._update_one(entity_type, entity_id, {"$inc": dict(deltas)})

    def set_fields(self, entity_type: str, entity_id: Any, fields: Dict[str, Any]) -> None:
        self._update_one(entity_type, entity_id, {"$set": dict(fields)})

    def add_to_set(self, entity_type: str, entity_id: Any, field: str, value: Any) -> None:
        self._update_one(entity_type, entity_id, {"$addToSet": {field: value}})

    def pull(self, entity_type: str, entity_id: Any, field: str, value: Any) -> None:
        self._update_one(entity_type, entity_id, {"$pull": {field: value}})

    def ensure_indexes(self) -> None:
        for definition in self._definitions.values():
            collection = self._db[definition.collection]
            for keys, options in definition.indexes:
                with self._guard():
                    collection.create_index(keys, **options)
        logger.info("Indexes ensured for %d collections", len(self._definitions))
