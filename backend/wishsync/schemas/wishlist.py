from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ViewMode(str, Enum):
    NONE = "none"
    OWNER = "owner"
    GUEST = "guest"


class ItemStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    RESERVED_BY_YOU = "reserved_by_you"


class User(BaseModel):
    id: str
    name: str = ""


class WishList(BaseModel):
    id: str
    owner_id: str
    title: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True, "frozen": True}


class WishItem(BaseModel):
    id: str
    list_id: str
    name: str
    link: str = ""
    is_reserved: bool = False
    reserved_by: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True, "frozen": True}


class WishListCreate(BaseModel):
    owner_id: str
    title: str = Field(min_length=1, max_length=120)

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("title must not be blank")
        return normalized


class WishListUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=120)

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("title must not be blank")
        return normalized


class WishItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    link: str = Field(default="", max_length=2048)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("name must not be blank")
        return normalized

    @field_validator("link", mode="before")
    @classmethod
    def _normalize_link(cls, value: str | None) -> str:
        if value is None:
            return ""
        return value.strip()


class WishItemUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    link: str | None = Field(default=None, max_length=2048)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError("name must not be blank")
        return normalized

    @field_validator("link")
    @classmethod
    def _normalize_link(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip()


class ReservationToggle(BaseModel):
    user_id: str


class CreatedId(BaseModel):
    id: str


class ItemView(BaseModel):
    """An item as one viewer is allowed to see it.

    Owners get ``is_reserved`` only; nobody gets another user's id.
    """

    id: str
    list_id: str
    name: str
    link: str
    is_reserved: bool
    status: ItemStatus | None = None
    reserved_by_me: bool = False
    can_toggle: bool = False


class Affordances(BaseModel):
    can_add_items: bool = False
    can_delete_items: bool = False
    can_delete_list: bool = False
    can_share: bool = False
    can_toggle_reservations: bool = False
    can_unfollow: bool = False


class HomeView(BaseModel):
    own: list[WishList] = []
    followed: list[WishList] = []
