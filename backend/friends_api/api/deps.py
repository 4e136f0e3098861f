from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any
import json

from fastapi import Request, status
from pydantic import ValidationError
from starlette.datastructures import Headers
from starlette.formparsers import FormParser

from friends_api.db.pool import ConnectionPool
from friends_api.schemas.friend import NewFriend


FORM_CONTENT_TYPES = {"application/x-www-form-urlencoded", "multipart/form-data"}
FRIEND_FIELDS = ("name", "email")
URLENCODED_HEADERS = Headers({"content-type": "application/x-www-form-urlencoded"})


def get_pool(request: Request) -> ConnectionPool:
    return request.app.state.pool


@dataclass(frozen=True)
class JsonBody:
    payload: NewFriend


@dataclass(frozen=True)
class FormBody:
    payload: NewFriend


@dataclass(frozen=True)
class InvalidBody:
    status_code: int
    detail: Any


ParsedBody = JsonBody | FormBody | InvalidBody


def _validate(kind: type[JsonBody] | type[FormBody], data: Any) -> ParsedBody:
    try:
        payload = NewFriend.model_validate(data)
    except ValidationError as exc:
        return InvalidBody(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        )
    return kind(payload=payload)


def _decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


async def _decode_urlencoded(body: bytes) -> dict[str, str] | None:
    """Parse ``body`` with the same form parser ``Request.form()`` uses."""

    async def chunks() -> AsyncGenerator[bytes, None]:
        yield body
        yield b""

    form = await FormParser(URLENCODED_HEADERS, chunks()).parse()
    fields = {field: form[field] for field in FRIEND_FIELDS if field in form}
    if not fields:
        return None
    return fields


async def parse_new_friend(request: Request) -> ParsedBody:
    """Read a NewFriend from either a JSON or a form body.

    The declared content type picks the decoder. Without a usable content
    type, JSON is tried first and URL-encoded form second.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        return _validate(FormBody, {field: form[field] for field in FRIEND_FIELDS if field in form})

    body = await request.body()
    if not body.strip():
        return InvalidBody(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is empty")

    data = _decode_json(body)
    if content_type == "application/json" or content_type.endswith("+json"):
        if data is None:
            return InvalidBody(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is not valid JSON")
        return _validate(JsonBody, data)

    if data is not None:
        return _validate(JsonBody, data)
    fields = await _decode_urlencoded(body)
    if fields is not None:
        return _validate(FormBody, fields)
    return InvalidBody(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Request body must be JSON or form-encoded name and email",
    )
