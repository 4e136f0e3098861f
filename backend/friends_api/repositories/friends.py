from sqlalchemy import select
from sqlalchemy.orm import Session

from friends_api.models import Friend
from friends_api.schemas.friend import NewFriend


class FriendNotFound(Exception):
    def __init__(self, friend_id: int) -> None:
        super().__init__(f"Friend {friend_id} not found")
        self.friend_id = friend_id


def get_friend(session: Session, friend_id: int) -> Friend:
    friend = session.get(Friend, friend_id)
    if friend is None:
        raise FriendNotFound(friend_id)
    return friend


def list_friends(session: Session) -> list[Friend]:
    return list(session.scalars(select(Friend).order_by(Friend.id)))


def create_friend(session: Session, payload: NewFriend) -> Friend:
    friend = Friend(name=payload.name, email=payload.email)
    session.add(friend)
    session.commit()
    session.refresh(friend)
    return friend
