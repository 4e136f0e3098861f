from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from friends_api.db.base import Base


class Friend(Base):
    # Schema is owned by db/migrations; this mapping must follow it.
    __tablename__ = "friends"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(Text)
    email: Mapped[str] = mapped_column(Text, index=True)
