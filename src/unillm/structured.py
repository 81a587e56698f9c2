from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Helpers for structured llm outputs: schema resolution, schema normalization
for providers with a reduced JSON-schema dialect, and pydantic validation.
"""
import copy
import json
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError

from .types import JSONSchema

DEFAULT_SCHEMA_NAME = "structured_response"


@dataclass(frozen=True, slots=True)
class ResolvedSchema:
    name: str
    schema: JSONSchema
    model: type[BaseModel] | None = None
    strict: bool = True


def _is_model_type(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, BaseModel)


def resolve_schema(schema: JSONSchema | type[BaseModel]) -> ResolvedSchema:
    """
    Accept a raw JSON schema, a `{name, schema, strict}` envelope, an
    OpenAI-style `{json_schema: {...}}` envelope or a pydantic model class.
    """
    if _is_model_type(schema):
        return ResolvedSchema(
            name=schema.__name__,
            schema=schema.model_json_schema(),
            model=schema,
        )

    if not isinstance(schema, dict):
        raise TypeError(f"Unsupported schema type: {type(schema).__name__}")

    body: dict[str, Any] = schema
    if isinstance(body.get("json_schema"), dict):
        body = body["json_schema"]

    inner = body.get("schema")
    if isinstance(inner, dict):
        name = body.get("name") if isinstance(body.get("name"), str) else None
        strict = body.get("strict")
        return ResolvedSchema(
            name=name or DEFAULT_SCHEMA_NAME,
            schema=inner,
            strict=strict if isinstance(strict, bool) else True,
        )

    return ResolvedSchema(name=DEFAULT_SCHEMA_NAME, schema=body)


def schema_expects_array(schema: JSONSchema) -> bool:
    return schema.get("type") == "array"


def inline_schema_refs(schema: JSONSchema) -> JSONSchema:
    """Replace local `#/$defs/...` and `#/definitions/...` refs with their bodies."""
    root = copy.deepcopy(schema)
    defs: dict[str, Any] = {}
    for key in ("$defs", "definitions"):
        if isinstance(root.get(key), dict):
            defs.update(root[key])

    def _resolve(node: Any, seen: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [_resolve(item, seen) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/"):
            name = ref.rsplit("/", 1)[-1]
            target = defs.get(name)
            if target is not None and name not in seen:
                merged = {k: v for k, v in node.items() if k != "$ref"}
                merged = {**copy.deepcopy(target), **merged}
                return _resolve(merged, seen + (name,))
            # Recursive ref: leave an untyped placeholder.
            return {k: v for k, v in node.items() if k != "$ref"} or {"type": "object"}

        return {k: _resolve(v, seen) for k, v in node.items()}

    return _resolve(root, ())


def strip_schema_keys(schema: Any, keys: Iterable[str]) -> Any:
    """Recursively drop `keys` from every object in the schema tree."""
    drop = frozenset(keys)

    def _strip(node: Any, in_properties: bool) -> Any:
        if isinstance(node, list):
            return [_strip(item, False) for item in node]
        if not isinstance(node, dict):
            return node
        out: dict[str, Any] = {}
        for k, v in node.items():
            # Property names are user data, never schema keywords.
            if not in_properties and k in drop:
                continue
            out[k] = _strip(v, k == "properties" and not in_properties)
        return out

    return _strip(schema, False)


def validate_with_model(value: Any, model: type[BaseModel]) -> list[str]:
    """Validate a parsed JSON value against a pydantic model; return error strings."""
    try:
        model.model_validate(value)
    except ValidationError as e:
        errors: list[str] = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
            errors.append(f"Schema validation failed at {loc}: {err.get('msg')}")
        return errors
    return []


def schema_instruction(schema: JSONSchema) -> str:
    """Short prompt suffix used by providers that cannot enforce a schema natively."""
    return (
        "Respond with JSON that conforms to this schema:\n"
        + json.dumps(schema, indent=2, ensure_ascii=True)
    )
