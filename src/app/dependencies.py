from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header

from src.adapters.mongo_client import MongoClientFactory
from src.adapters.oauth_client import GoogleOAuthClient
from src.app.config import Settings, get_settings
from src.schemas.context import TenantContext
from src.services.appointments import AppointmentRepository, OrphanedEventRepository, TaskRepository
from src.services.backfill import LegacyEventTagger, is_authorized
from src.services.calendar import CalendarService
from src.services.calendar_resolver import CalendarCache, CalendarResolver
from src.services.credentials import CredentialStore
from src.services.errors import UnauthorizedError
from src.services.google_clients import GoogleClientProvider
from src.services.locks import SlotLockRepository
from src.services.oauth import OAuthService
from src.services.outbox import NotificationOutbox
from src.services.reauth import ReauthHandler
from src.utils.crypto import TokenCipher

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_mongo_factory() -> MongoClientFactory:
    settings = get_settings()
    return MongoClientFactory(settings.mongo_uri, settings.mongo_database)


@lru_cache(maxsize=1)
def get_oauth_client() -> GoogleOAuthClient:
    settings = get_settings()
    return GoogleOAuthClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        token_uri=settings.google_token_uri,
    )


@lru_cache(maxsize=1)
def get_token_cipher() -> TokenCipher:
    return TokenCipher(get_settings().token_encryption_key)


@lru_cache(maxsize=1)
def get_calendar_cache() -> CalendarCache:
    return CalendarCache()


@lru_cache(maxsize=1)
def get_slot_locks() -> SlotLockRepository:
    settings = get_settings()
    locks = SlotLockRepository(
        get_mongo_factory().get_collection(settings.booking_locks_collection),
        ttl_seconds=settings.booking_lock_ttl_seconds,
    )
    try:
        locks.ensure_indexes()
    except Exception:
        logger.warning("Could not ensure booking lock TTL index", exc_info=True)
    return locks


def get_active_tenant(
    x_business_id: Optional[str] = Header(default=None),
    active_business_id: Optional[str] = Cookie(default=None),
) -> TenantContext:
    context = TenantContext.from_request(x_business_id, active_business_id)
    if context is None:
        raise UnauthorizedError()
    return context


def require_admin_secret(
    x_admin_secret: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not is_authorized(settings.admin_job_secret, x_admin_secret):
        raise UnauthorizedError()


def get_credential_store(
    settings: Settings = Depends(get_settings),
    mongo_factory: MongoClientFactory = Depends(get_mongo_factory),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> CredentialStore:
    return CredentialStore(
        collection=mongo_factory.get_collection(settings.businesses_collection),
        cipher=cipher,
        clear_token_on_reauth=settings.clear_token_on_reauth,
    )


def get_client_provider(
    settings: Settings = Depends(get_settings),
    credential_store: CredentialStore = Depends(get_credential_store),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
) -> GoogleClientProvider:
    return GoogleClientProvider(credential_store, oauth_client, settings.default_timezone)


def get_calendar_resolver(
    settings: Settings = Depends(get_settings),
    clients: GoogleClientProvider = Depends(get_client_provider),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> CalendarResolver:
    return CalendarResolver(
        clients=clients,
        cache=cache,
        default_timezone=settings.default_timezone,
        primary_business_id=settings.primary_tenant_business_id,
        primary_calendar_id=settings.google_calendar_id,
    )


def get_reauth_handler(
    credential_store: CredentialStore = Depends(get_credential_store),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ReauthHandler:
    return ReauthHandler(credential_store, cache)


def get_outbox(
    settings: Settings = Depends(get_settings),
    mongo_factory: MongoClientFactory = Depends(get_mongo_factory),
    clients: GoogleClientProvider = Depends(get_client_provider),
    reauth: ReauthHandler = Depends(get_reauth_handler),
) -> NotificationOutbox:
    return NotificationOutbox(mongo_factory.get_collection(settings.outbox_collection), clients, reauth)


def get_calendar_service(
    settings: Settings = Depends(get_settings),
    mongo_factory: MongoClientFactory = Depends(get_mongo_factory),
    clients: GoogleClientProvider = Depends(get_client_provider),
    resolver: CalendarResolver = Depends(get_calendar_resolver),
    credential_store: CredentialStore = Depends(get_credential_store),
    reauth: ReauthHandler = Depends(get_reauth_handler),
    locks: SlotLockRepository = Depends(get_slot_locks),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> CalendarService:
    return CalendarService(
        clients=clients,
        resolver=resolver,
        credential_store=credential_store,
        reauth=reauth,
        appointments=AppointmentRepository(mongo_factory.get_collection(settings.appointments_collection)),
        tasks=TaskRepository(mongo_factory.get_collection(settings.tasks_collection)),
        orphans=OrphanedEventRepository(mongo_factory.get_collection(settings.orphaned_events_collection)),
        locks=locks,
        outbox=outbox,
        default_timezone=settings.default_timezone,
        side_effect_timeout=settings.side_effect_timeout_seconds,
    )


def get_oauth_service(
    settings: Settings = Depends(get_settings),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> OAuthService:
    return OAuthService(
        oauth_client=oauth_client,
        credential_store=credential_store,
        default_next=settings.oauth_default_next,
        error_path=settings.oauth_error_path,
        integrations_path=settings.oauth_integrations_path,
    )


def get_legacy_tagger(
    settings: Settings = Depends(get_settings),
    clients: GoogleClientProvider = Depends(get_client_provider),
    resolver: CalendarResolver = Depends(get_calendar_resolver),
    reauth: ReauthHandler = Depends(get_reauth_handler),
) -> LegacyEventTagger:
    return LegacyEventTagger(
        clients=clients,
        resolver=resolver,
        reauth=reauth,
        primary_calendar_id=settings.google_calendar_id,
    )
