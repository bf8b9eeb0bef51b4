from __future__ import annotations

import inspect
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_RESPONSE_DOC_ATTR = "__response_doc_config__"
_ENCODERS = {ObjectId: str}


@dataclass(frozen=True)
class ResponseDocConfig:
    message: str
    status_code: int
    description: str
    success_example: Any | None = None
    response_codes: dict[int, str] | None = None


def encode(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder=_ENCODERS)


def success_payload(
    data: Any,
    message: str = "Success",
    *,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Upload replies are flat: ``{message, <url fields>..., entity}``.

    Non-mapping results are nested under ``data`` so the top level stays a mapping.
    """
    payload: dict[str, Any] = {"message": message}
    if isinstance(data, dict):
        payload.update({key: value for key, value in data.items() if key != "message"})
    elif data is not None:
        payload["data"] = data
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_payload(
    message: str,
    *,
    code: str | None = None,
    details: Any = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": message}
    if code:
        payload["code"] = code
    if details is not None:
        payload["details"] = details
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_response(
    *,
    status_code: int,
    message: str,
    code: str | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=encode(error_payload(message=message, code=code, details=details, request_id=request_id)),
    )


def _parse_http_exception_detail(detail: Any) -> tuple[str, str, Any]:
    if isinstance(detail, str):
        return detail, "HTTP_EXCEPTION", None

    if isinstance(detail, dict):
        message = detail.get("message")
        if isinstance(message, str) and message.strip():
            return message, detail.get("code", "HTTP_EXCEPTION"), detail.get("details")

        nested_detail = detail.get("detail")
        if isinstance(nested_detail, str) and nested_detail.strip():
            return nested_detail, "HTTP_EXCEPTION", detail

        return "Request failed", "HTTP_EXCEPTION", detail

    if detail is None:
        return "Request failed", "HTTP_EXCEPTION", None

    return str(detail), "HTTP_EXCEPTION", None


def _extract_request(*args: Any, **kwargs: Any) -> Request | None:
    for value in kwargs.values():
        if isinstance(value, Request):
            return value
    for value in args:
        if isinstance(value, Request):
            return value
    return None


def request_id_from_request(request: Request | None) -> str | None:
    if request is None:
        return None
    return getattr(request.state, "request_id", None)


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, code, details = _parse_http_exception_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        code=code,
        details=details,
        request_id=request_id_from_request(request),
        headers=exc.headers,
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    description: str = "Successful response",
    success_example: Any | None = None,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        config = ResponseDocConfig(
            message=message,
            status_code=status_code,
            description=description,
            success_example=success_example,
            response_codes=response_codes,
        )

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result

            if isinstance(result, Response):
                return result

            request = _extract_request(*args, **kwargs)
            return JSONResponse(
                status_code=status_code,
                content=encode(
                    success_payload(
                        data=result,
                        message=message,
                        request_id=request_id_from_request(request),
                    )
                ),
            )

        setattr(wrapper, _RESPONSE_DOC_ATTR, config)
        return wrapper

    return decorator


def document_created(*, message: str = "Created", success_example: Any | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return document_response(
        message=message,
        status_code=status.HTTP_201_CREATED,
        description="Resource created",
        success_example=success_example,
        response_codes={400: "Upload rejected", 401: "Unauthorized", 502: "Asset service unavailable"},
    )


def document_deleted(*, message: str = "Deleted") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return document_response(
        message=message,
        status_code=status.HTTP_200_OK,
        description="Resource deleted",
        success_example={"deleted": True},
    )


def apply_response_documentation(app: FastAPI) -> None:
    updated = False

    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue

        config = getattr(route.endpoint, _RESPONSE_DOC_ATTR, None)
        if not isinstance(config, ResponseDocConfig):
            continue

        route.status_code = config.status_code

        existing_responses = dict(route.responses or {})
        success_code = config.status_code
        response_entry = dict(existing_responses.get(success_code, {}))
        response_entry.setdefault("description", config.description)

        content = dict(response_entry.get("content", {}))
        app_json = dict(content.get("application/json", {}))
        app_json.setdefault("example", success_payload(data=config.success_example, message=config.message))
        content["application/json"] = app_json
        response_entry["content"] = content
        existing_responses[success_code] = response_entry

        for code, code_description in (config.response_codes or {}).items():
            entry = dict(existing_responses.get(code, {}))
            entry.setdefault("description", code_description)
            entry_content = dict(entry.get("content", {}))
            entry_json = dict(entry_content.get("application/json", {}))
            entry_json.setdefault("example", error_payload(code_description))
            entry_content["application/json"] = entry_json
            entry["content"] = entry_content
            existing_responses[code] = entry

        route.responses = existing_responses
        updated = True

    if updated:
        app.openapi_schema = None
