"""
Lyceum Backend — Pydantic Request/Response Schemas
====================================================

What:  Pydantic models defining the API contract between clients and backend.
Why:   Input validation for the reserved list parameters and bulk bodies,
       and documented response shapes in the OpenAPI schema.
How:   Field aliases use the camelCase names clients already send
       (sortField, distinctField, ...). Document payloads themselves stay
       free-form dicts; the document models validate them.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.config import settings


# ══════════════════════════════════════════════════════════════════════════
# Query Parameter Models
# ══════════════════════════════════════════════════════════════════════════

class ListQuery(BaseModel):
    """
    Reserved query parameters of the bulk read endpoint.

    Every other query parameter is treated as a filter.

    Parameters:
        page / limit / offset: skip = offset + (page - 1) * limit
        keyword / language:    free-text search over searchable string paths
        sortField / sortOrder: single-field sort, ignored when random
        distinctField:         return the distinct values of one path
        groupByField:          return documents grouped by one path
        random:                return `limit` randomly sampled documents
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.default_page_limit, ge=1)
    offset: int = Field(default=0, ge=0)
    keyword: Optional[str] = None
    sort_field: Optional[str] = Field(default=None, alias="sortField")
    distinct_field: Optional[str] = Field(default=None, alias="distinctField")
    group_by_field: Optional[str] = Field(default=None, alias="groupByField")
    sort_order: Literal["asc", "desc"] = Field(default="asc", alias="sortOrder")
    language: Optional[str] = None
    random: bool = False

    @property
    def skip(self) -> int:
        return self.offset + (self.page - 1) * self.limit


# Query-string names consumed by ListQuery (never used as filters)
RESERVED_PARAMS = frozenset(
    field.alias or name for name, field in ListQuery.model_fields.items()
)


# ══════════════════════════════════════════════════════════════════════════
# Request Bodies
# ══════════════════════════════════════════════════════════════════════════

class BulkUpdateRequest(BaseModel):
    ids: List[str] = Field(min_length=1)
    update: Dict[str, Any]


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(min_length=1)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════

class ListResponse(BaseModel):
    """
    Bulk read result.

    total is the match count for plain and random reads, and the number of
    returned entries for distinct and group-by reads.
    """

    items: List[Any]
    total: int
    page: int
    limit: int
    offset: int


class MediaListResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    page: int
    pages: int


class DeleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    id: str = Field(alias="_id")


class BulkDeleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deleted_count: int = Field(alias="deletedCount")


class UploadResponse(BaseModel):
    message: str
    media: Dict[str, Any]


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "Lecture not found",
            "request_id": "5f2c9a1b"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="MongoDB connectivity: connected, disconnected")
    cloud_storage: str = Field(description="Cloud storage: configured, unconfigured")
    uptime_seconds: float = Field(description="Seconds since service started")
