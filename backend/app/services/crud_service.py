"""
Lyceum Backend — Generic CRUD Service
=======================================

What:  One service class that implements list, lookup and write operations
       for any Beanie document model.
Why:   Users, appointments, lectures and media expose the same endpoint set;
       only the model, its display name and a few options differ.
How:   Filters and sorts come from the dynamic query builder; reads go
       through Beanie's query API; writes validate payloads against the model.
Who:   Instantiated once per collection in services/collections.py.

Bulk read modes (priority order):
    distinctField → Model.distinct(field, query)
    groupByField  → aggregate [$match, $group {_id: $field, items: $push $$ROOT}]
    random        → aggregate [$match, $sample {size: limit}]
    otherwise     → find(query).sort(...).skip(...).limit(...)

    The item query and the count run concurrently.

Error Handling Strategy:
    Application exceptions (ValidationError, NotFoundError) propagate as-is.
    Anything else raised by the driver is logged and wrapped in DatabaseError
    so the client sees "Error fetching <Model>s" instead of driver internals.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from app.config import settings
from app.crud.query_builder import (
    build_filters,
    build_sort,
    cast_value,
    parse_object_id,
    parse_sort_string,
)
from app.crud.schema_paths import is_path_or_parent, schema_paths
from app.exceptions import DatabaseError, LyceumError, NotFoundError, ValidationError
from app.models.base import LyceumDocument
from app.schemas.api import ListQuery

logger = logging.getLogger(__name__)

# Keys a client can never write directly
PROTECTED_KEYS = {"_id", "id", "createdAt", "updatedAt", "created_at", "updated_at", "revision_id"}

# Paths excluded from the default searchable/sortable sets
INTERNAL_PATHS = {"_id", "__v"}


def encode_raw(value: Any) -> Any:
    """JSON-ready copy of raw driver output (aggregation results, distinct values)."""
    return jsonable_encoder(value, custom_encoder={ObjectId: str})


@dataclass
class CrudOptions:
    """
    Per-collection options.

    searchable_fields / sortable_fields default to every schema path except
    `_id`; excluded_fields are stored keys removed from every response.
    """

    searchable_fields: Optional[Sequence[str]] = None
    sortable_fields: Optional[Sequence[str]] = None
    excluded_fields: Sequence[str] = field(default_factory=tuple)
    max_keyword_length: int = field(default_factory=lambda: settings.max_keyword_length)


class CrudService:
    """
    List, lookup and write operations for one document model.

    Args:
        model:      Beanie document class.
        model_name: Display name used in messages ("Lecture not found").
        options:    Searchable/sortable/excluded fields and keyword limit.
    """

    def __init__(
        self,
        model: Type[LyceumDocument],
        model_name: str,
        options: Optional[CrudOptions] = None,
    ):
        self.model = model
        self.model_name = model_name
        self.options = options or CrudOptions()

        self.hidden_keys = set(model.hidden_aliases()) | set(self.options.excluded_fields)
        # Hidden paths can be neither filtered, sorted nor looked up
        self.schema = {
            path: instance
            for path, instance in schema_paths(model).items()
            if path not in self.hidden_keys
        }
        default_fields = [path for path in self.schema if path not in INTERNAL_PATHS]
        self.searchable_fields = list(self.options.searchable_fields or default_fields)
        self.sortable_fields = list(self.options.sortable_fields or default_fields)

    # ── Serialization helpers ─────────────────────────────────────────────
    def serialize(self, document: LyceumDocument) -> Dict[str, Any]:
        return document.to_json(exclude=self.options.excluded_fields)

    def _hidden_projection(self) -> List[Dict[str, Any]]:
        if not self.hidden_keys:
            return []
        return [{"$project": {key: 0 for key in sorted(self.hidden_keys)}}]

    def _wrap_unexpected(self, exc: Exception, action: str) -> DatabaseError:
        logger.error("%s failed for %s: %s", action, self.model_name, exc, exc_info=True)
        return DatabaseError(
            message=f"Error {action} {self.model_name}s",
            context={"error_type": type(exc).__name__},
        )

    # ══════════════════════════════════════════════════════════════════════
    # Bulk Read
    # ══════════════════════════════════════════════════════════════════════

    async def read_items(self, params: ListQuery, filters: Mapping[str, str]) -> Dict[str, Any]:
        """
        List documents with filtering, sorting, pagination and the
        distinct / group-by / random modes.

        Returns:
            {"items", "total", "page", "limit", "offset"}

        Raises:
            ValidationError: Keyword too long or an unconvertible filter value.
            DatabaseError:   The query failed.
        """
        query = build_filters(
            filters,
            self.searchable_fields,
            self.schema,
            keyword=params.keyword,
            language=params.language,
            max_keyword_length=self.options.max_keyword_length,
        )
        sort = [] if params.random else build_sort(
            params.sort_field, params.sort_order, self.sortable_fields
        )

        distinct_field = params.distinct_field if params.distinct_field in self.schema else None
        group_field = params.group_by_field if params.group_by_field in self.schema else None

        try:
            if distinct_field:
                fetch = self._fetch_distinct(distinct_field, query)
            elif group_field:
                fetch = self._fetch_grouped(group_field, query)
            elif params.random:
                fetch = self._fetch_sample(query, params.limit)
            else:
                fetch = self._fetch_page(query, sort, params.skip, params.limit)

            items, count = await asyncio.gather(fetch, self.model.find(query).count())
        except LyceumError:
            raise
        except Exception as e:
            raise self._wrap_unexpected(e, "fetching")

        total = len(items) if (distinct_field or group_field) else count
        return {
            "items": items,
            "total": total,
            "page": params.page,
            "limit": params.limit,
            "offset": params.offset,
        }

    async def _fetch_distinct(self, field_name: str, query: Dict[str, Any]) -> List[Any]:
        values = await self.model.distinct(field_name, query)
        return encode_raw(values)

    async def _fetch_grouped(self, field_name: str, query: Dict[str, Any]) -> List[Any]:
        pipeline = [
            {"$match": query},
            *self._hidden_projection(),
            {"$group": {"_id": f"${field_name}", "items": {"$push": "$$ROOT"}}},
        ]
        groups = await self.model.aggregate(pipeline).to_list()
        return encode_raw(groups)

    async def _fetch_sample(self, query: Dict[str, Any], size: int) -> List[Any]:
        pipeline = [
            {"$match": query},
            {"$sample": {"size": size}},
            *self._hidden_projection(),
        ]
        documents = await self.model.aggregate(pipeline).to_list()
        return encode_raw(documents)

    async def _fetch_page(self, query, sort, skip: int, limit: int) -> List[Dict[str, Any]]:
        finder = self.model.find(query)
        if sort:
            finder = finder.sort(sort)
        documents = await finder.skip(skip).limit(limit).to_list()
        return [self.serialize(doc) for doc in documents]

    # ══════════════════════════════════════════════════════════════════════
    # Single Reads
    # ══════════════════════════════════════════════════════════════════════

    def _not_found(self, resource_id: Optional[str] = None) -> NotFoundError:
        return NotFoundError(resource=self.model_name, resource_id=resource_id)

    async def _get_document(self, _id: str) -> LyceumDocument:
        object_id = parse_object_id(_id, "_id")
        try:
            document = await self.model.get(object_id)
        except Exception as e:
            raise self._wrap_unexpected(e, "fetching")
        if document is None:
            raise self._not_found(_id)
        return document

    async def read_item(self, _id: str) -> Dict[str, Any]:
        """Single document by ObjectId; 400 for a malformed id, 404 when absent."""
        return self.serialize(await self._get_document(_id))

    async def read_item_by_slug(self, slug: str) -> Dict[str, Any]:
        try:
            document = await self.model.find_one({"slug": slug})
        except Exception as e:
            raise self._wrap_unexpected(e, "fetching")
        if document is None:
            raise self._not_found(slug)
        return self.serialize(document)

    async def read_item_by_field(
        self,
        key: str,
        value: str,
        single: bool = False,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        allowed_keys: Optional[Iterable[str]] = None,
    ):
        """
        Documents whose `key` equals `value`.

        Args:
            key / value:  Stored path and raw value (cast to the path's type).
            single:       Return only the first match instead of a list.
            sort:         Mongoose-style sort string, or "rand" for a random sample.
            limit:        Maximum number of documents (sample size for "rand").
            allowed_keys: When non-empty, the only paths that may be looked up.

        Raises:
            ValidationError: `key` is an operator, hidden, not a stored path,
                             or not in allowed_keys.
            NotFoundError:   Nothing matched.
        """
        allowed = list(allowed_keys or [])
        # Hidden paths are absent from self.schema, so this also rejects them
        valid = not key.startswith("$") and is_path_or_parent(self.schema, key)
        if not valid or (allowed and key not in allowed):
            message = f"Invalid field '{key}'"
            if allowed:
                message += f". Allowed fields: {', '.join(allowed)}"
            raise ValidationError(message=message, field=key)

        query = {key: cast_value(self.schema.get(key), value, key)}

        try:
            if sort == "rand":
                items = await self._fetch_sample(query, limit or 1)
            else:
                finder = self.model.find(query)
                sort_spec = parse_sort_string(sort, self.schema)
                if sort_spec:
                    finder = finder.sort(sort_spec)
                if single:
                    finder = finder.limit(1)
                elif limit:
                    finder = finder.limit(limit)
                items = [self.serialize(doc) for doc in await finder.to_list()]
        except LyceumError:
            raise
        except Exception as e:
            raise self._wrap_unexpected(e, "fetching")

        if not items:
            raise self._not_found()
        return items[0] if single else items

    async def read_field_by_id(self, _id: str, field_name: str) -> Dict[str, Any]:
        """
        One field of one document: {field_name: value}.

        Nested objects ("bio") and dotted paths ("bio.section.about") both work.
        """
        if field_name in self.hidden_keys or not is_path_or_parent(self.schema, field_name):
            raise ValidationError(
                message=f"Field '{field_name}' not found in {self.model_name}",
                field=field_name,
            )
        data = self.serialize(await self._get_document(_id))

        value: Any = data
        for part in field_name.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        return {field_name: value}

    # ══════════════════════════════════════════════════════════════════════
    # Writes
    # ══════════════════════════════════════════════════════════════════════

    def _validate(self, payload: Dict[str, Any]) -> LyceumDocument:
        try:
            return self.model.model_validate(payload)
        except PydanticValidationError as e:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            raise ValidationError(
                message=f"Invalid {self.model_name} data",
                context={"errors": errors},
            )

    @staticmethod
    def _writable(payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in payload.items() if key not in PROTECTED_KEYS}

    async def _insert(self, document: LyceumDocument) -> LyceumDocument:
        try:
            await document.insert()
        except DuplicateKeyError:
            raise ValidationError(message=f"{self.model_name} already exists")
        except LyceumError:
            raise
        except Exception as e:
            raise self._wrap_unexpected(e, "creating")
        return document

    async def create_item(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        document = self._validate(self._writable(payload))
        await self._insert(document)
        logger.info("%s created: %s", self.model_name, document.id)
        return self.serialize(document)

    async def create_many(self, payloads: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Validates every payload before inserting any of them."""
        if not payloads:
            raise ValidationError(message="Request body must be a non-empty list")
        documents = [self._validate(self._writable(payload)) for payload in payloads]
        # One by one so insert hooks (timestamps, password hashing) run
        for document in documents:
            await self._insert(document)
        logger.info("%d %s documents created", len(documents), self.model_name)
        return [self.serialize(doc) for doc in documents]

    async def update_item(self, _id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge `changes` into the stored document, re-validate and replace it.

        Dotted keys ("bio.section.about") update nested values in place.
        """
        document = await self._get_document(_id)
        merged = document.model_dump(by_alias=True, exclude={"revision_id"})
        apply_changes(merged, self._writable(changes))

        updated = self._validate(merged)
        updated.id = document.id
        try:
            await updated.replace()
        except DuplicateKeyError:
            raise ValidationError(message=f"{self.model_name} already exists")
        except LyceumError:
            raise
        except Exception as e:
            raise self._wrap_unexpected(e, "updating")
        logger.info("%s updated: %s", self.model_name, document.id)
        return self.serialize(updated)

    async def update_many(self, ids: Sequence[str], changes: Mapping[str, Any]) -> List[Dict[str, Any]]:
        for _id in ids:
            parse_object_id(_id, "ids")
        return [await self.update_item(_id, changes) for _id in ids]

    async def delete_item(self, _id: str) -> Dict[str, Any]:
        document = await self._get_document(_id)
        try:
            await document.delete()
        except Exception as e:
            raise self._wrap_unexpected(e, "deleting")
        logger.info("%s deleted: %s", self.model_name, _id)
        return {"message": f"{self.model_name} deleted successfully", "_id": str(document.id)}

    async def delete_many(self, ids: Sequence[str]) -> Dict[str, int]:
        object_ids = [parse_object_id(_id, "ids") for _id in ids]
        try:
            result = await self.model.find({"_id": {"$in": object_ids}}).delete()
        except Exception as e:
            raise self._wrap_unexpected(e, "deleting")
        deleted = result.deleted_count if result is not None else 0
        logger.info("%d %s documents deleted", deleted, self.model_name)
        return {"deletedCount": deleted}


def apply_changes(target: Dict[str, Any], changes: Mapping[str, Any]) -> None:
    """Set each key of `changes` on `target`; dotted keys walk into nested dicts."""
    for key, value in changes.items():
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
