from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from friends_api.api.deps import InvalidBody, ParsedBody, get_pool, parse_new_friend
from friends_api.db.pool import ConnectionPool, PoolExhausted
from friends_api.models import Friend
from friends_api.repositories.friends import FriendNotFound, create_friend, get_friend, list_friends
from friends_api.schemas.friend import FriendRead


router = APIRouter(prefix="/friends", tags=["friends"])
logger = logging.getLogger(__name__)


def _pool_unavailable(exc: PoolExhausted) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(exc),
        headers={"Retry-After": str(max(1, round(exc.timeout)))},
    )


def _internal_error(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# Declared before /{friend_id} so "all" is not read as an id.
@router.get("/all", response_model=list[FriendRead])
async def view_all_friends(pool: Annotated[ConnectionPool, Depends(get_pool)]) -> list[Friend]:
    try:
        async with pool.acquire() as handle:
            return await handle.interact(list_friends)
    except PoolExhausted as exc:
        raise _pool_unavailable(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("view_all_friends failed with store error")
        raise _internal_error(exc) from exc


@router.get("/{friend_id}", response_model=FriendRead)
async def view_friend(
    friend_id: int,
    pool: Annotated[ConnectionPool, Depends(get_pool)],
) -> Friend:
    try:
        async with pool.acquire() as handle:
            return await handle.interact(lambda session: get_friend(session, friend_id))
    except FriendNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend not found") from exc
    except PoolExhausted as exc:
        raise _pool_unavailable(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("view_friend failed with store error", extra={"friend_id": friend_id})
        raise _internal_error(exc) from exc


@router.post("/new", status_code=status.HTTP_303_SEE_OTHER, response_class=RedirectResponse)
async def add_friend(
    request: Request,
    body: Annotated[ParsedBody, Depends(parse_new_friend)],
    pool: Annotated[ConnectionPool, Depends(get_pool)],
) -> RedirectResponse:
    if isinstance(body, InvalidBody):
        logger.info("add_friend rejected body", extra={"status_code": body.status_code})
        raise HTTPException(status_code=body.status_code, detail=body.detail)

    logger.info("add_friend called", extra={"body_kind": type(body).__name__})
    try:
        async with pool.acquire() as handle:
            friend = await handle.interact(lambda session: create_friend(session, body.payload))
    except PoolExhausted as exc:
        raise _pool_unavailable(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("add_friend failed with store error")
        raise _internal_error(exc) from exc

    logger.info("add_friend succeeded", extra={"friend_id": friend.id})
    location = request.app.url_path_for("view_friend", friend_id=str(friend.id))
    return RedirectResponse(url=location, status_code=status.HTTP_303_SEE_OTHER)
