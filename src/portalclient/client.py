from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from portalclient.brands import BrandProfileService
from portalclient.config import ClientConfig
from portalclient.credentials import CredentialManager
from portalclient.dedup import RequestDeduplicator
from portalclient.fake_api import FakeApiState, create_fake_app
from portalclient.profiles import UserProfileService
from portalclient.storage import JsonFileStore, KeyValueStore
from portalclient.telemetry import Telemetry
from portalclient.transport import HttpxTransport
from portalclient.users import UsersService

logger = logging.getLogger(__name__)


@dataclass
class PortalClient:
    config: ClientConfig
    telemetry: Telemetry
    store: KeyValueStore
    deduplicator: RequestDeduplicator
    api_transport: HttpxTransport
    auth_transport: HttpxTransport
    directory_transport: HttpxTransport
    credentials: CredentialManager
    brands: BrandProfileService
    user_profile: UserProfileService
    users: UsersService
    owned_http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        for transport in (self.api_transport, self.auth_transport, self.directory_transport):
            await transport.aclose()
        if self.owned_http_client is not None:
            await self.owned_http_client.aclose()


def _fake_http_client(config: ClientConfig) -> httpx.AsyncClient:
    app = create_fake_app(FakeApiState(token_lifetime_seconds=config.fake_token_lifetime_seconds))
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        timeout=httpx.Timeout(config.request_timeout_seconds),
    )


def build_client(
    config: ClientConfig | None = None,
    store: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> PortalClient:
    """Wire one independent client. Every service shares a single deduplicator."""
    client_config = config or ClientConfig()
    telemetry = Telemetry()
    deduplicator = RequestDeduplicator(telemetry=telemetry)

    owned_http_client = None
    if http_client is None and client_config.fake_api_mode:
        logger.info("Fake API mode: requests are served in-process")
        http_client = owned_http_client = _fake_http_client(client_config)
        # The fake app serves the directory endpoints too.
        client_config = client_config.model_copy(update={"users_base_url": client_config.base_url})

    def transport(base_url: str, token_provider=None) -> HttpxTransport:
        return HttpxTransport(
            base_url=base_url,
            timeout=client_config.request_timeout_seconds,
            token_provider=token_provider,
            client=http_client,
            telemetry=telemetry,
        )

    auth_transport = transport(client_config.base_url)
    credential_store = store if store is not None else JsonFileStore(client_config.session_file)
    credentials = CredentialManager(
        transport=auth_transport,
        store=credential_store,
        config=client_config,
        deduplicator=deduplicator,
        telemetry=telemetry,
    )
    api_transport = transport(client_config.base_url, token_provider=credentials.get_valid_access_token)
    directory_transport = transport(client_config.users_base_url)

    return PortalClient(
        config=client_config,
        telemetry=telemetry,
        store=credential_store,
        deduplicator=deduplicator,
        api_transport=api_transport,
        auth_transport=auth_transport,
        directory_transport=directory_transport,
        credentials=credentials,
        brands=BrandProfileService(api_transport, deduplicator=deduplicator),
        user_profile=UserProfileService(api_transport, deduplicator=deduplicator),
        users=UsersService(directory_transport, deduplicator=deduplicator),
        owned_http_client=owned_http_client,
    )


_client: PortalClient | None = None


def get_client() -> PortalClient:
    """Process-wide client, built from the environment on first use."""
    global _client
    if _client is None:
        _client = build_client(ClientConfig.from_env())
    return _client


def get_credential_manager() -> CredentialManager:
    return get_client().credentials


def reset_client() -> None:
    """Drop the process-wide client. Only meant for test isolation."""
    global _client
    _client = None
