from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import Response

from portalclient.errors import TokenDecodeError
from portalclient.schemas import LoginRequest, RefreshRequest, TokenPair
from portalclient.telemetry import Telemetry
from portalclient.tokens import decode_claims, encode_unsigned

DEFAULT_ACCOUNTS = {"demo@example.com": "demo-password"}


def _default_brands() -> dict[int, dict[str, Any]]:
    return {
        1: {"id": 1, "name": "Acme", "description": "Anvils and rockets"},
        2: {"id": 2, "name": "Globex", "description": "Global exports"},
        3: {"id": 3, "name": "Initech", "description": "TPS reports"},
    }


def _default_directory(count: int = 30) -> list[dict[str, Any]]:
    return [
        {
            "id": index,
            "firstName": f"First{index}",
            "lastName": f"Last{index}",
            "email": f"user{index}@example.com",
            "image": f"https://example.com/avatars/{index}.png",
        }
        for index in range(1, count + 1)
    ]


@dataclass
class FakeApiState:
    """Everything the fake portal keeps in memory, exposed for assertions."""

    accounts: dict[str, str] = field(default_factory=lambda: DEFAULT_ACCOUNTS.copy())
    brands: dict[int, dict[str, Any]] = field(default_factory=_default_brands)
    directory: list[dict[str, Any]] = field(default_factory=_default_directory)
    token_lifetime_seconds: int = 300
    latency_seconds: float = 0.0
    clock: Callable[[], float] = time.time

    calls: Counter = field(default_factory=Counter)
    refresh_tokens: dict[str, str] = field(default_factory=dict)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def issue_tokens(self, email: str) -> TokenPair:
        access = encode_unsigned(
            {
                "sub": email,
                "exp": int(self.clock()) + self.token_lifetime_seconds,
                "jti": uuid.uuid4().hex,
            }
        )
        refresh = uuid.uuid4().hex
        self.refresh_tokens[refresh] = email
        return TokenPair(access=access, refresh=refresh)

    def profile_for(self, email: str) -> dict[str, Any]:
        if email not in self.profiles:
            name = email.split("@", 1)[0]
            self.profiles[email] = {
                "id": len(self.profiles) + 1,
                "email": email,
                "name": name,
                "first_name": name.capitalize(),
                "last_name": "",
            }
        return self.profiles[email]


def create_fake_app(state: FakeApiState | None = None) -> FastAPI:
    fake = state or FakeApiState()

    app = FastAPI(title="Portal Fake API", version="0.1.0")
    app.state.fake = fake

    async def record(endpoint: str) -> None:
        fake.calls[endpoint] += 1
        if fake.latency_seconds > 0:
            await asyncio.sleep(fake.latency_seconds)

    async def current_email(authorization: str | None = Header(default=None)) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="missing bearer token")
        try:
            claims = decode_claims(authorization.removeprefix("Bearer "))
        except TokenDecodeError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        if claims.exp <= fake.clock():
            raise HTTPException(status_code=401, detail="token expired")
        email = getattr(claims, "sub", None)
        if not isinstance(email, str) or email not in fake.accounts:
            raise HTTPException(status_code=401, detail="unknown subject")
        return email

    @app.post("/login/", response_model=TokenPair)
    async def login(request: LoginRequest) -> TokenPair:
        await record("login")
        if fake.accounts.get(request.email) != request.password:
            raise HTTPException(status_code=401, detail="invalid credentials")
        return fake.issue_tokens(request.email)

    @app.post("/refresh/", response_model=TokenPair)
    async def refresh(request: RefreshRequest) -> TokenPair:
        await record("refresh")
        email = fake.refresh_tokens.pop(request.refresh, None)
        if email is None:
            raise HTTPException(status_code=401, detail="refresh token is invalid or rotated")
        return fake.issue_tokens(email)

    @app.get("/brands/")
    async def list_brands(query: str | None = None, email: str = Depends(current_email)) -> dict[str, Any]:
        await record("brands.list")
        results = list(fake.brands.values())
        if query:
            results = [brand for brand in results if query.lower() in brand["name"].lower()]
        return {"count": len(results), "next": None, "previous": None, "results": results}

    @app.get("/brands/{brand_id}/")
    async def get_brand(brand_id: int, email: str = Depends(current_email)) -> dict[str, Any]:
        await record("brands.detail")
        brand = fake.brands.get(brand_id)
        if brand is None:
            raise HTTPException(status_code=404, detail="brand not found")
        return brand

    @app.patch("/brands/{brand_id}/")
    async def update_brand(
        brand_id: int, body: dict[str, Any], email: str = Depends(current_email)
    ) -> dict[str, Any]:
        await record("brands.update")
        brand = fake.brands.get(brand_id)
        if brand is None:
            raise HTTPException(status_code=404, detail="brand not found")
        brand.update({k: v for k, v in body.items() if k != "id"})
        return brand

    @app.get("/users/me/")
    async def get_me(email: str = Depends(current_email)) -> dict[str, Any]:
        await record("users.me")
        return fake.profile_for(email)

    @app.patch("/users/me/")
    async def update_me(body: dict[str, Any], email: str = Depends(current_email)) -> dict[str, Any]:
        await record("users.me.update")
        profile = fake.profile_for(email)
        profile.update({k: v for k, v in body.items() if k not in ("id", "email")})
        return profile

    def directory_page(users: list[dict[str, Any]], limit: int, skip: int) -> dict[str, Any]:
        window = users[skip:] if limit == 0 else users[skip : skip + limit]
        return {"users": window, "total": len(users), "skip": skip, "limit": len(window)}

    @app.get("/users")
    async def list_users(limit: int = 30, skip: int = 0, q: str | None = None, select: str | None = None) -> dict[str, Any]:
        await record("directory.list")
        users = fake.directory
        if q:
            users = [user for user in users if _matches(user, q)]
        return directory_page(users, limit=limit, skip=skip)

    @app.get("/users/search")
    async def search_users(q: str, limit: int = 30, skip: int = 0, select: str | None = None) -> dict[str, Any]:
        await record("directory.search")
        users = [user for user in fake.directory if _matches(user, q)]
        return directory_page(users, limit=limit, skip=skip)

    @app.get("/users/{user_id}")
    async def get_user(user_id: int) -> dict[str, Any]:
        await record("directory.detail")
        for user in fake.directory:
            if user["id"] == user_id:
                return user
        raise HTTPException(status_code=404, detail=f"User with id '{user_id}' not found")

    @app.get("/metrics")
    async def metrics() -> Response:
        body, content_type = Telemetry.scrape()
        return Response(content=body, media_type=content_type)

    return app


def _matches(user: dict[str, Any], query: str) -> bool:
    needle = query.lower()
    return any(needle in str(user.get(name, "")).lower() for name in ("firstName", "lastName", "email"))
