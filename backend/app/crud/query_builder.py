"""
Lyceum Backend — Dynamic Query Builder
========================================

What:  Converts query-string parameters into MongoDB filter and sort documents.
Why:   Every collection gets the same list endpoint; clients filter on any
       stored path without a hand-written endpoint per field.
How:   Each parameter is matched against the model's schema paths
       (see schema_paths.py) and translated by path type.

Filter rules, evaluated per parameter in this order:

    min<Field>=v / max<Field>=v    → {field: {$gte / $lte: v}}     (range types only)
    more<Field>=n / less<Field>=n  → array has more / fewer than n elements
    <path>=v                       → Boolean: v == "true"
                                     String:  case-insensitive substring regex
                                     Null:    {$not: {$exists: true}}
                                     other:   v cast to the path's type
    contains<Field>=v              → regex on Code/RegExp/Binary/Symbol paths

    The prefixed rules only apply when the derived field is a schema path of
    a fitting type; otherwise the parameter falls through to the next rule,
    so a path literally named "minutes" still filters by exact match.
    Parameters that match nothing are ignored.

Keyword search:
    keyword=v → {$or: [{<string path>: regex}, ...]} over the searchable
    fields. With language=xx, a localized `<field>.xx` string path is used
    when the model has one.

All user input embedded in regexes is escaped; `keyword=a.b` matches the
literal text "a.b".
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import Decimal128, Int64, ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING

from app.exceptions import ValidationError

# Path types that support min/max range filters
RANGE_TYPES = {"Date", "Number", "Decimal128", "Int32", "Int64", "Timestamp", "Double"}

# Path types matched by the contains<Field> rule
PATTERN_TYPES = {"Code", "RegExp", "Binary", "Symbol"}

_INTEGER = re.compile(r"^[+-]?\d+$")

# Matches nothing; used where an empty $or / $in would be rejected or ambiguous
MATCH_NOTHING: Dict[str, Any] = {"_id": {"$in": []}}


def regex_condition(value: str) -> Dict[str, str]:
    """Case-insensitive literal substring match."""
    return {"$regex": re.escape(value), "$options": "i"}


def _field_from_suffix(suffix: str) -> str:
    """`minCreatedAt` → suffix `CreatedAt` → `createdAt`."""
    if not suffix:
        return suffix
    return suffix[0].lower() + suffix[1:]


# ══════════════════════════════════════════════════════════════════════════
# Value Casting
# ══════════════════════════════════════════════════════════════════════════

def parse_date(value: str, field: Optional[str] = None) -> datetime:
    """
    Parse an ISO 8601 date/datetime or epoch milliseconds.

    Naive values are taken as UTC, which is how MongoDB stores dates.
    """
    text = value.strip()
    try:
        if _INTEGER.match(text):
            return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        raise ValidationError(
            message=f"Invalid date '{value}'",
            field=field,
            context={"value": value},
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_number(value: str, field: Optional[str] = None):
    text = value.strip()
    try:
        if _INTEGER.match(text):
            return int(text)
        number = float(text)
    except ValueError:
        raise ValidationError(
            message=f"Invalid number '{value}'",
            field=field,
            context={"value": value},
        )
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(message=f"Invalid number '{value}'", field=field)
    return number


def parse_object_id(value: str, field: Optional[str] = None) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(
            message=f"Invalid ObjectId '{value}'",
            field=field,
            context={"value": value},
        )


def cast_value(instance: Optional[str], value: str, field: Optional[str] = None) -> Any:
    """
    Convert a raw query-string value to the Python type stored for `instance`.

    Unknown or textual types keep the raw string.
    """
    if instance == "Boolean":
        return value.lower() == "true"
    if instance == "Null":
        return None
    if instance == "Date":
        return parse_date(value, field)
    if instance == "ObjectId":
        return parse_object_id(value, field)
    if instance == "Decimal128":
        try:
            return Decimal128(Decimal(value.strip()))
        except (InvalidOperation, ValueError):
            raise ValidationError(message=f"Invalid number '{value}'", field=field)
    if instance in ("Int32", "Int64"):
        number = parse_number(value, field)
        if not isinstance(number, int):
            raise ValidationError(message=f"Invalid integer '{value}'", field=field)
        return Int64(number) if instance == "Int64" else number
    if instance in ("Number", "Double", "Timestamp"):
        return parse_number(value, field)
    return value


def _range_value(instance: str, value: str, field: str) -> Any:
    if instance == "Date":
        return parse_date(value, field)
    return cast_value(instance, value, field)


# ══════════════════════════════════════════════════════════════════════════
# Filters
# ══════════════════════════════════════════════════════════════════════════

def build_keyword_clause(
    keyword: str,
    searchable_fields: Iterable[str],
    schema: Mapping[str, str],
    language: Optional[str] = None,
) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []
    for field in searchable_fields:
        target = field
        if language and schema.get(f"{field}.{language}") == "String":
            target = f"{field}.{language}"
        if schema.get(target) == "String":
            clauses.append({target: regex_condition(keyword)})
    return clauses


def _merge_condition(query: Dict[str, Any], field: str, condition: Dict[str, Any]) -> None:
    existing = query.get(field)
    if isinstance(existing, dict):
        existing.update(condition)
    else:
        query[field] = condition


def _apply_range(query, schema, key, value) -> bool:
    prefix = key[:3]
    if prefix not in ("min", "max") or len(key) <= 3:
        return False
    field = _field_from_suffix(key[3:])
    instance = schema.get(field)
    if instance not in RANGE_TYPES:
        return False
    operator = "$gte" if prefix == "min" else "$lte"
    _merge_condition(query, field, {operator: _range_value(instance, value, key)})
    return True


def _apply_array_length(query, schema, key, value) -> bool:
    prefix = key[:4]
    if prefix not in ("more", "less") or len(key) <= 4:
        return False
    field = _field_from_suffix(key[4:])
    if field not in schema:
        return False
    count = parse_number(value, key)
    if not isinstance(count, int):
        raise ValidationError(message=f"Invalid integer '{value}'", field=key)

    if prefix == "more":
        # Every array has more than a negative number of elements
        if count >= 0:
            # More than n elements ⇔ index n exists
            _merge_condition(query, f"{field}.{count}", {"$exists": True})
    elif count <= 0:
        query.setdefault("$and", []).append(MATCH_NOTHING)
    else:
        # Fewer than n elements ⇔ index n-1 is missing
        _merge_condition(query, f"{field}.{count - 1}", {"$exists": False})
    return True


def _apply_exact(query, schema, key, value) -> bool:
    instance = schema.get(key)
    if instance is None:
        return False
    if instance == "Boolean":
        query[key] = value.lower() == "true"
    elif instance == "String":
        query[key] = regex_condition(value)
    elif instance == "Null":
        query[key] = {"$not": {"$exists": True}}
    else:
        query[key] = cast_value(instance, value, key)
    return True


def _apply_contains(query, schema, key, value) -> bool:
    if not key.startswith("contains") or len(key) <= 8:
        return False
    field = _field_from_suffix(key[8:])
    if schema.get(field) not in PATTERN_TYPES:
        return False
    query[field] = regex_condition(value)
    return True


_RULES = (_apply_range, _apply_array_length, _apply_exact, _apply_contains)


def build_filters(
    filters: Mapping[str, str],
    searchable_fields: Iterable[str],
    schema: Mapping[str, str],
    keyword: Optional[str] = None,
    language: Optional[str] = None,
    max_keyword_length: int = 100,
) -> Dict[str, Any]:
    """
    Build a MongoDB filter document from query parameters.

    Args:
        filters:            Non-reserved query parameters (name → raw value).
        searchable_fields:  Paths the keyword is matched against.
        schema:             Output of schema_paths() for the model.
        keyword:            Free-text search term.
        language:           Locale suffix for localized string paths.
        max_keyword_length: Longest keyword accepted.

    Raises:
        ValidationError: Keyword too long, or a value that cannot be converted
                         to its path's type.
    """
    query: Dict[str, Any] = {}

    if keyword:
        if len(keyword) > max_keyword_length:
            raise ValidationError(
                message=f"Keyword too long. Maximum length is {max_keyword_length} characters.",
                field="keyword",
            )
        clauses = build_keyword_clause(keyword, searchable_fields, schema, language)
        query["$or"] = clauses or [MATCH_NOTHING]

    for key, value in filters.items():
        for rule in _RULES:
            if rule(query, schema, key, value):
                break

    return query


# ══════════════════════════════════════════════════════════════════════════
# Sorting
# ══════════════════════════════════════════════════════════════════════════

def build_sort(
    sort_field: Optional[str],
    sort_order: str,
    sortable_fields: Iterable[str],
) -> List[Tuple[str, int]]:
    """`[(field, 1|-1)]` when the field is sortable, else no sort."""
    if not sort_field or sort_field not in set(sortable_fields):
        return []
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    return [(sort_field, direction)]


def parse_sort_string(sort: Optional[str], schema: Mapping[str, str]) -> List[Tuple[str, int]]:
    """
    Parse a Mongoose-style sort string: "-createdAt title" or "-createdAt,title".

    A leading '-' sorts descending; unknown paths are dropped.
    """
    if not sort:
        return []
    sort_spec: List[Tuple[str, int]] = []
    for token in re.split(r"[\s,]+", sort.strip()):
        if not token:
            continue
        direction = DESCENDING if token.startswith("-") else ASCENDING
        field = token.lstrip("+-")
        if field in schema:
            sort_spec.append((field, direction))
    return sort_spec
