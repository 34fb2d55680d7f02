"""
API documentation generators

Builds the OpenAPI document served at ``/api-docs`` by introspection:

* ``generate_schemas_from_models`` walks the declared fields of each pydantic
  model (type, validators, description, default, id references).
* ``generate_swagger_paths`` walks the routers mounted under the API prefix
  and infers an operation id, parameters, request body and responses from
  each path template and method.

The document is built once and cached for the lifetime of the process.
"""
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, Type, Union, get_args, get_origin

from fastapi.routing import APIRoute, APIRouter
from pydantic import BaseModel, EmailStr

from auth import AllowRule, is_allowed

logger = logging.getLogger(__name__)

PARAM_RE = re.compile(r"\{([^}:]+)(?::[^}]*)?\}")
SECURITY = [{"bearerAuth": []}]

TYPE_MAP: List[Tuple[type, Dict[str, Any]]] = [
    (bool, {"type": "boolean"}),
    (int, {"type": "integer"}),
    (float, {"type": "number"}),
    (str, {"type": "string"}),
    (datetime, {"type": "string", "format": "date-time"}),
    (date, {"type": "string", "format": "date"}),
    (bytes, {"type": "string", "format": "binary"}),
    (dict, {"type": "object"}),
]

# pydantic constraint attribute -> OpenAPI keyword
CONSTRAINTS = {
    "ge": "minimum",
    "le": "maximum",
    "gt": "exclusiveMinimum",
    "lt": "exclusiveMaximum",
    "min_length": "minLength",
    "max_length": "maxLength",
    "pattern": "pattern",
}


def ref(name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def camel(word: str) -> str:
    return "".join(w[:1].upper() + w[1:] for w in re.split(r"[-_]", word) if w)


def singular(tag: str) -> str:
    if tag.endswith("ies"):
        return tag[:-3] + "y"
    return tag[:-1] if tag.endswith("s") else tag


# ----------------------- Schemas -----------------------
def annotation_schema(annotation: Any) -> Dict[str, Any]:
    """Map a Python type annotation onto an OpenAPI schema fragment."""
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Union or (origin is not None and type(None) in args):
        members = [a for a in args if a is not type(None)]
        schema = annotation_schema(members[0]) if len(members) == 1 else {
            "oneOf": [annotation_schema(m) for m in members]
        }
        if len(members) < len(args):
            schema["nullable"] = True
        return schema
    if origin is Literal:
        values = list(args)
        schema = annotation_schema(type(values[0])) if values else {"type": "string"}
        schema["enum"] = values
        return schema
    if origin in (list, set, frozenset, tuple):
        return {"type": "array", "items": annotation_schema(args[0]) if args else {"type": "string"}}
    if origin is dict:
        return {"type": "object"}

    if annotation is EmailStr:
        return {"type": "string", "format": "email"}
    if isinstance(annotation, type):
        if issubclass(annotation, BaseModel):
            return ref(annotation.__name__)
        for py_type, schema in TYPE_MAP:
            if issubclass(annotation, py_type):
                return dict(schema)
    return {"type": "string"}


def field_schema(field) -> Dict[str, Any]:
    info = annotation_schema(field.annotation)
    target = info["items"] if info.get("type") == "array" and "items" in info else info

    for constraint in field.metadata:
        for attr, keyword in CONSTRAINTS.items():
            value = getattr(constraint, attr, None)
            if value is None:
                continue
            if info.get("type") == "array" and attr in ("min_length", "max_length"):
                info["minItems" if attr == "min_length" else "maxItems"] = value
            else:
                target[keyword] = value

    extra = field.json_schema_extra if isinstance(field.json_schema_extra, dict) else {}
    if field.description:
        info["description"] = field.description
    if extra.get("ref"):
        target["description"] = f"Reference to {extra['ref']} model"
    if (
        not field.is_required()
        and field.default_factory is None
        and isinstance(field.default, (str, int, float, bool))
    ):
        info["default"] = field.default
    return info


def extract_model_schema(model: Type[BaseModel], with_id: bool = True) -> Dict[str, Any]:
    properties: Dict[str, Any] = {"id": {"type": "string", "description": "MongoDB ObjectId"}} if with_id else {}
    required = []
    for name, field in model.model_fields.items():
        properties[name] = field_schema(field)
        if field.is_required():
            required.append(name)
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def generate_schemas_from_models(models: Dict[str, Type[BaseModel]]) -> Dict[str, Any]:
    schemas = {}
    for name, model in models.items():
        schemas[name] = extract_model_schema(model)
    logger.info("API schemas generated from models: %s", ", ".join(schemas))
    return schemas


def nested_models(annotation: Any) -> Iterable[Type[BaseModel]]:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        yield annotation
    for arg in get_args(annotation):
        yield from nested_models(arg)


def register_body_model(model: Type[BaseModel], schemas: Dict[str, Any]) -> Dict[str, str]:
    """Add a request body model (and the models it nests) to ``schemas``."""
    if model.__name__ not in schemas:
        schemas[model.__name__] = extract_model_schema(model, with_id=False)
        for field in model.model_fields.values():
            for nested in nested_models(field.annotation):
                register_body_model(nested, schemas)
    return ref(model.__name__)


# ----------------------- Paths -----------------------
def split_route_path(path: str, prefix: str) -> Optional[Tuple[str, str]]:
    """Split ``/api/v1/products/{id}`` into ``("products", "/{id}")``."""
    if not path.startswith(prefix + "/"):
        return None
    resource, _, rest = path[len(prefix) + 1:].partition("/")
    return resource, f"/{rest}" if rest else ""


def generate_operation_id(resource: str, sub_path: str, method: str) -> str:
    parts = [p for p in sub_path.strip("/").split("/") if p]
    # /get/count style helper routes read better without the leading verb
    if len(parts) > 1 and parts[0] == "get":
        parts = parts[1:]
    words = []
    for part in parts:
        param = PARAM_RE.fullmatch(part)
        words.append("By" + camel(param.group(1)) if param else camel(part))
    return method.lower() + camel(resource) + "".join(words)


def extract_path_params(route: APIRoute) -> List[Dict[str, Any]]:
    declared = {p.alias: p for p in route.dependant.path_params}
    params = []
    for name in PARAM_RE.findall(route.path):
        field = declared.get(name)
        schema = annotation_schema(field.field_info.annotation) if field is not None else {"type": "string"}
        params.append({"name": name, "in": "path", "required": True, "schema": schema})
    return params


def extract_query_params(route: APIRoute) -> List[Dict[str, Any]]:
    return [
        {
            "name": p.alias,
            "in": "query",
            "required": p.field_info.is_required(),
            "schema": annotation_schema(p.field_info.annotation),
        }
        for p in route.dependant.query_params
    ]


def error_responses() -> Dict[str, Any]:
    error_body = {"application/json": {"schema": ref("Error")}}
    return {
        "400": {"description": "Bad request", "content": error_body},
        "401": {"$ref": "#/components/responses/UnauthorizedError"},
        "404": {"$ref": "#/components/responses/NotFoundError"},
        "500": {"$ref": "#/components/responses/ServerError"},
    }


def determine_response_schema(sub_path: str, method: str, tag: str) -> Tuple[str, Dict[str, Any]]:
    name = singular(tag)
    single_param = PARAM_RE.fullmatch(sub_path.lstrip("/")) is not None
    ends_with_param = PARAM_RE.search(sub_path.rsplit("/", 1)[-1]) is not None

    if method == "get" and not sub_path:
        return f"List of {tag}", {"type": "array", "items": ref(name)}
    if method == "get" and single_param:
        return f"{name} details", ref(name)
    if method == "get" and sub_path.endswith("/count"):
        return f"{name} count", {"type": "object", "properties": {"count": {"type": "integer", "example": 42}}}
    if method == "get" and sub_path.endswith("/totalsales"):
        return "Total sales", {"type": "object", "properties": {"total_sales": {"type": "number"}}}
    if method == "get" and sub_path.startswith("/get/"):
        return f"List of {tag}", {"type": "array", "items": ref(name)}
    if method == "post" and not sub_path:
        return f"Created {name}", ref(name)
    if method == "put" and ends_with_param:
        return f"Updated {name}", ref(name)
    if method == "delete" and ends_with_param:
        return f"{name} deleted", {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "example": True},
                "message": {"type": "string", "example": f"{name} deleted successfully"},
            },
        }
    if method == "post" and sub_path.endswith("/login"):
        return "Login successful", {
            "type": "object",
            "properties": {
                "user": {"type": "string", "example": "user@example.com"},
                "token": {"type": "string", "example": "eyJhbGciOiJIUzI1..."},
            },
        }
    if method == "post" and sub_path.endswith("/register"):
        return f"Registered {name}", ref(name)
    return "Successful operation", {}


def multipart_body(properties: Dict[str, Any], required: Iterable[str] = ()) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return {"required": True, "content": {"multipart/form-data": {"schema": schema}}}


def body_model(route: APIRoute) -> Optional[Type[BaseModel]]:
    """The pydantic model a route takes as its JSON body, if it takes one."""
    params = route.dependant.body_params
    if len(params) != 1:
        return None
    annotation = params[0].field_info.annotation
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def determine_request_body(route: APIRoute, sub_path: str, method: str, tag: str,
                           schemas: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if method in ("get", "delete", "head", "options"):
        return None
    name = singular(tag)

    if tag == "Products" and "gallery-images" in sub_path:
        return multipart_body({
            "images": {
                "type": "array",
                "items": {"type": "string", "format": "binary"},
                "description": "Gallery images (up to 10)",
            },
        }, ["images"])
    if tag == "Products":
        model = schemas.get(name, {})
        properties = {
            k: v for k, v in model.get("properties", {}).items()
            if k not in ("id", "image", "date_created")
        }
        properties["image"] = {"type": "string", "format": "binary", "description": "Product image file"}
        required = [r for r in model.get("required", []) if r in properties]
        if method == "post":
            required.append("image")
        return multipart_body(properties, required)

    model = body_model(route)
    if model is None:
        return None
    return {"required": True, "content": {"application/json": {"schema": register_body_model(model, schemas)}}}


def generate_swagger_paths(routers: Iterable[Tuple[str, str, APIRouter]], prefix: str,
                           allow_list: Iterable[AllowRule],
                           schemas: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Document every route of each ``(tag, mount prefix, router)`` entry."""
    allow_list = list(allow_list)
    schemas = schemas if schemas is not None else {}
    paths: Dict[str, Any] = {}

    for tag, mount, router in routers:
        for route in router.routes:
            if not isinstance(route, APIRoute) or not route.include_in_schema:
                continue
            full_path = mount + route.path
            parts = split_route_path(full_path, prefix)
            if parts is None:
                continue
            resource, sub_path = parts
            doc_path = f"/{resource}{sub_path}"

            for method in sorted(m.lower() for m in route.methods):
                description, schema = determine_response_schema(sub_path, method, tag)
                status = str(route.status_code or 200)
                operation: Dict[str, Any] = {
                    "tags": [tag],
                    "summary": f"{method.upper()} {doc_path}",
                    "description": f"{method.upper()} operation for {doc_path}",
                    "operationId": generate_operation_id(resource, sub_path, method),
                    "parameters": extract_path_params(route) + extract_query_params(route),
                    "responses": {
                        status: {"description": description, "content": {"application/json": {"schema": schema}}},
                        **error_responses(),
                    },
                }
                body = determine_request_body(route, sub_path, method, tag, schemas)
                if body:
                    operation["requestBody"] = body
                # allow-listed operations opt out of the document-wide bearer requirement
                operation["security"] = [] if is_allowed(full_path, method.upper(), allow_list) else SECURITY
                paths.setdefault(doc_path, {})[method] = operation

    logger.info("API paths generated for routes: %d", len(paths))
    return paths


# ----------------------- Document -----------------------
ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "success": {"type": "boolean", "example": False},
        "message": {"type": "string"},
    },
}


def _error_response(description: str, message: str) -> Dict[str, Any]:
    return {
        "description": description,
        "content": {
            "application/json": {
                "schema": ref("Error"),
                "example": {"success": False, "message": message},
            }
        },
    }


def build_openapi(routers: Iterable[Tuple[str, str, APIRouter]], models: Dict[str, Type[BaseModel]],
                  prefix: str, allow_list: Iterable[AllowRule], title: str = "E-Shop API Documentation",
                  version: str = "1.0.0") -> Dict[str, Any]:
    routers = list(routers)
    schemas = generate_schemas_from_models(models)
    paths = generate_swagger_paths(routers, prefix, allow_list, schemas)
    tags = []
    for tag, _, _ in routers:
        if tag not in tags:
            tags.append(tag)

    return {
        "openapi": "3.0.3",
        "info": {
            "title": title,
            "version": version,
            "description": "RESTful API for E-Shop built with FastAPI and MongoDB",
        },
        "servers": [{"url": prefix or "/", "description": "Current server"}],
        "tags": [{"name": t, "description": f"{t} operations"} for t in tags],
        "components": {
            "securitySchemes": {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
            },
            "schemas": {**schemas, "Error": ERROR_SCHEMA},
            "responses": {
                "UnauthorizedError": _error_response("Access token is missing or invalid", "Unauthorized"),
                "NotFoundError": _error_response("Resource not found", "Resource not found"),
                "ServerError": _error_response("Internal server error", "Internal server error"),
            },
        },
        "paths": paths,
        "security": SECURITY,
    }
