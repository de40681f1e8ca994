from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portalclient.errors import ResponseValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)
ItemT = TypeVar("ItemT")


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh: str = Field(min_length=1)


class TokenPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    access: str = Field(min_length=1)
    refresh: str = Field(min_length=1)


class DecodedClaims(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Epoch seconds. Strings are never coerced and NaN or Infinity are rejected.
    exp: float = Field(strict=True, allow_inf_nan=False)


class PaginatedResult(BaseModel, Generic[ItemT]):
    count: int = Field(ge=0)
    next: str | None = None
    previous: str | None = None
    results: list[ItemT] = Field(default_factory=list)


class BrandProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    email: str
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    firstName: str
    lastName: str
    email: str
    image: str | None = None


class UsersResponse(BaseModel):
    users: list[User]
    total: int = Field(ge=0)
    skip: int = Field(ge=0)
    limit: int = Field(ge=0)


class UsersParams(BaseModel):
    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)
    q: str | None = None
    select: str | None = None


class UsersPage(BaseModel):
    response: UsersResponse
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


def parse_response(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a decoded JSON payload right where it leaves the transport."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ResponseValidationError(
            f"unexpected {model.__name__} payload: {exc.error_count()} validation error(s)"
        ) from exc
