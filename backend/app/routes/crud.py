"""
Lyceum Backend — Generic CRUD Routes
======================================

What:  Builds the standard endpoint set for one collection.
Why:   Every collection exposes the same list/lookup/write surface; only the
       CrudService behind it changes.
How:   create_crud_router() returns an APIRouter bound to one service.
       Handlers stay thin: parse the request, call the service, return JSON.

Endpoints (relative to the collection prefix):
    GET    ""               list with filters (see crud/query_builder.py)
    GET    /{_id}           single document
    GET    /{key}/{value}   ObjectId key → one field of that document
                            "slug"       → document by slug
                            other        → documents where key == value
    POST   ""               create
    POST   /bulk            create many
    PUT    /bulk, PATCH /bulk   update many  {"ids": [...], "update": {...}}
    PUT    /{_id}, PATCH /{_id} update one
    DELETE /bulk            delete many  {"ids": [...]}
    DELETE /{_id}           delete one

    /bulk routes are registered before /{_id} so "bulk" is never read as an id.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Body, Query, Request, Response
from pydantic import ValidationError as PydanticValidationError

from app.exceptions import ValidationError
from app.schemas.api import (
    RESERVED_PARAMS,
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkUpdateRequest,
    DeleteResponse,
    ErrorResponse,
    ListQuery,
    ListResponse,
)
from app.services.crud_service import CrudService

logger = logging.getLogger(__name__)


def parse_list_query(request: Request) -> Tuple[ListQuery, Dict[str, str]]:
    """
    Split the query string into reserved list parameters and filters.

    Raises:
        ValidationError: A reserved parameter has an invalid value (e.g. page=0).
    """
    reserved: Dict[str, str] = {}
    filters: Dict[str, str] = {}
    for key, value in request.query_params.items():
        if key in RESERVED_PARAMS:
            reserved[key] = value
        else:
            filters[key] = value

    try:
        params = ListQuery.model_validate(reserved)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValidationError(
            message=f"Invalid query parameter '{field}': {first['msg']}",
            field=field,
        )
    return params, filters


def create_crud_router(
    service: CrudService,
    prefix: str,
    tags: Optional[List[str]] = None,
    lookup_keys: Optional[Iterable[str]] = None,
) -> APIRouter:
    """
    Build the CRUD router for one collection.

    Args:
        service:     Service bound to the collection's model.
        prefix:      Mount path, e.g. "/api/v1/lectures".
        tags:        OpenAPI tags.
        lookup_keys: Paths allowed in GET /{key}/{value}; None allows any stored path.
    """
    router = APIRouter(
        prefix=prefix,
        tags=tags or [service.model_name],
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    allowed_keys = list(lookup_keys) if lookup_keys else None
    name = service.model_name

    # ── Reads ─────────────────────────────────────────────────────────────

    @router.get(
        "",
        response_model=ListResponse,
        summary=f"List {name} documents",
        description=(
            "Reserved parameters: page, limit, offset, keyword, language, sortField, "
            "sortOrder, distinctField, groupByField, random. Any other parameter filters "
            "by field (exact path, min<Field>/max<Field>, more<Field>/less<Field>, "
            "contains<Field>)."
        ),
    )
    async def read_items(request: Request, response: Response):
        params, filters = parse_list_query(request)
        result = await service.read_items(params, filters)
        response.headers["X-Total-Count"] = str(result["total"])
        return result

    @router.get("/{item_id}", summary=f"Get one {name} by id")
    async def read_item(item_id: str):
        return await service.read_item(item_id)

    @router.get(
        "/{key}/{value}",
        summary=f"Look up {name} documents by field",
        description=(
            "With an ObjectId as key, returns the field named by value from that document. "
            "With key 'slug', returns the document with that slug. Otherwise returns the "
            "documents whose key equals value."
        ),
    )
    async def read_by_key(
        key: str,
        value: str,
        single: bool = Query(default=False),
        sort: Optional[str] = Query(default=None, description="e.g. '-createdAt' or 'rand'"),
        limit: Optional[int] = Query(default=None, ge=1),
    ):
        if ObjectId.is_valid(key):
            return await service.read_field_by_id(key, value)
        if key == "slug":
            return await service.read_item_by_slug(value)
        return await service.read_item_by_field(
            key,
            value,
            single=single,
            sort=sort,
            limit=limit,
            allowed_keys=allowed_keys,
        )

    # ── Creates ───────────────────────────────────────────────────────────

    @router.post("", status_code=201, summary=f"Create a {name}")
    async def create_item(payload: Dict[str, Any] = Body(...)):
        return await service.create_item(payload)

    @router.post("/bulk", status_code=201, summary=f"Create several {name} documents")
    async def create_items(payloads: List[Dict[str, Any]] = Body(...)):
        return await service.create_many(payloads)

    # ── Updates ───────────────────────────────────────────────────────────

    @router.api_route("/bulk", methods=["PUT", "PATCH"], summary=f"Update several {name} documents")
    async def update_items(body: BulkUpdateRequest):
        return await service.update_many(body.ids, body.update)

    @router.api_route("/{item_id}", methods=["PUT", "PATCH"], summary=f"Update a {name}")
    async def update_item(item_id: str, changes: Dict[str, Any] = Body(...)):
        return await service.update_item(item_id, changes)

    # ── Deletes ───────────────────────────────────────────────────────────

    @router.delete("/bulk", response_model=BulkDeleteResponse, summary=f"Delete several {name} documents")
    async def delete_items(body: BulkDeleteRequest):
        return await service.delete_many(body.ids)

    @router.delete("/{item_id}", response_model=DeleteResponse, summary=f"Delete a {name}")
    async def delete_item(item_id: str):
        return await service.delete_item(item_id)

    return router
