from pydantic import BaseModel, field_validator


class NewFriend(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name must not be empty")
        return value


class FriendRead(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True
