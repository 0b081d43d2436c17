# app/utils/responses.py
"""
Response envelope shared by the API:

    {"success": true, "data": ...}
    {"success": false, "errors": ["..."]}
"""

from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.constants.order_status import OrderStatus

# what each known field must look like, used for validation messages
FIELD_RULES = {
    "address_id": "must be a valid UUID",
    "product_id": "must be a valid UUID",
    "qty": "must be a positive integer",
    "items": "must be a non-empty array",
    "order_status": "must be one of: " + ", ".join(s.value for s in OrderStatus),
}


def success(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def error_body(errors: List[str]) -> dict:
    return {"success": False, "errors": errors}


def _field_path(loc) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def validation_messages(errors) -> List[str]:
    messages = []

    for error in errors:
        loc = tuple(error.get("loc", ()))
        source, fields = (loc[0], loc[1:]) if loc else ("body", ())

        if source == "path" and fields and fields[-1] == "order_id":
            message = "Invalid order ID"
        elif error.get("type") == "json_invalid":
            message = "Request body is not valid JSON"
        elif not fields:
            message = "Request body is required"
        else:
            # nested item errors carry extra loc parts after the field name
            field = next(
                (f for f in reversed(fields) if isinstance(f, str) and f in FIELD_RULES),
                None,
            )
            if error.get("type") == "missing" and fields[-1] == field:
                message = f"{_field_path(fields)} is required"
            elif field is not None:
                upto = fields[: max(i for i, f in enumerate(fields) if f == field) + 1]
                message = f"{_field_path(upto)} {FIELD_RULES[field]}"
            else:
                message = f"{_field_path(fields)}: {error.get('msg')}"

        if message not in messages:
            messages.append(message)

    return messages


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    errors = detail if isinstance(detail, list) else [str(detail)]
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(errors),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(validation_messages(exc.errors())),
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
