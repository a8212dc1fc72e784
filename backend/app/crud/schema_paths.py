"""
Schema introspection for the query builder.

Flattens a document model into `{stored_path: type_name}`. Type names follow
the Mongoose vocabulary (String, Number, Date, ObjectId, ...) because the
filter rules are expressed in terms of them. Nested sub-models contribute
dotted paths; arrays are a single `Array` path.
"""

import re
import types
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from inspect import isclass
from typing import Any, Dict, Literal, Type, Union, get_args, get_origin

from bson import Binary, Code, Decimal128, Int64, ObjectId, Regex, Timestamp
from pydantic import BaseModel

# Document internals that are never queryable
EXCLUDED_FIELDS = {"revision_id"}

ARRAY_TYPES = (list, set, tuple, frozenset)

# Checked in order: bson subclasses of builtins must win over their base
_CLASS_INSTANCES = (
    (bool, "Boolean"),
    (Int64, "Int64"),
    (Decimal128, "Decimal128"),
    (Decimal, "Decimal128"),
    (Timestamp, "Timestamp"),
    (Code, "Code"),
    (Binary, "Binary"),
    (bytes, "Binary"),
    (Regex, "RegExp"),
    (re.Pattern, "RegExp"),
    (ObjectId, "ObjectId"),
    (datetime, "Date"),
    (date, "Date"),
    (str, "String"),
    (int, "Number"),
    (float, "Number"),
)


def instance_of(annotation: Any) -> str:
    """Type name for a single field annotation."""
    if annotation is Any:
        return "Mixed"
    if annotation is None or annotation is type(None):
        return "Null"

    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return instance_of(members[0])
        return "Mixed"
    if origin is Literal:
        values = get_args(annotation)
        if all(isinstance(v, bool) for v in values):
            return "Boolean"
        if all(isinstance(v, str) for v in values):
            return "String"
        if all(isinstance(v, (int, float)) for v in values):
            return "Number"
        return "Mixed"
    if origin in ARRAY_TYPES or annotation in ARRAY_TYPES:
        return "Array"
    if origin is dict or annotation is dict:
        return "Mixed"

    if isclass(annotation):
        if issubclass(annotation, Enum):
            if issubclass(annotation, str):
                return "String"
            if issubclass(annotation, int):
                return "Number"
            return "Mixed"
        for cls, name in _CLASS_INSTANCES:
            if issubclass(annotation, cls):
                return name
    return "Mixed"


def _nested_model(annotation: Any):
    """The sub-model class behind `Model` or `Optional[Model]`, else None."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) != 1:
            return None
        annotation = members[0]
    if isclass(annotation) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _collect(model: Type[BaseModel], prefix: str, paths: Dict[str, str]) -> None:
    for name, field in model.model_fields.items():
        if name in EXCLUDED_FIELDS:
            continue
        path = prefix + (field.alias or name)
        nested = _nested_model(field.annotation)
        if nested is not None:
            _collect(nested, path + ".", paths)
        else:
            paths[path] = instance_of(field.annotation)


@lru_cache(maxsize=None)
def schema_paths(model: Type[BaseModel]) -> Dict[str, str]:
    """
    Stored path → type name for every queryable path of `model`.

    The result is cached per class and must not be mutated by callers.
    """
    paths: Dict[str, str] = {"_id": "ObjectId"}
    _collect(model, "", paths)
    return paths


def is_path_or_parent(schema: Dict[str, str], field: str) -> bool:
    """True for a schema path or for a nested object containing schema paths."""
    if field in schema:
        return True
    prefix = field + "."
    return any(path.startswith(prefix) for path in schema)
