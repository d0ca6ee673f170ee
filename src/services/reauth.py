from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from src.services.calendar_resolver import CalendarCache
from src.services.credentials import CredentialStore
from src.services.errors import CalendarIntegrationError, CredentialMissingError
from src.services.provider_errors import classify

logger = logging.getLogger(__name__)


class ReauthHandler:
    """Applies the reauthorization policy to failed provider calls.

    Every reauth-classified failure marks the tenant as ``needs_reauth`` and
    evicts its cached calendar id; token clearing follows the store's
    configured policy. A missing credential only marks tenants that had
    connected before, so a never-connected tenant stays ``unconnected``.
    """

    def __init__(self, credential_store: CredentialStore, cache: CalendarCache) -> None:
        self._store = credential_store
        self._cache = cache

    def handle(self, business_id: str, error: BaseException) -> CalendarIntegrationError:
        classified = classify(error)
        if classified.is_reauth_required:
            logger.error("Google reauthorization required for business %s: %s", business_id, classified.message)
            self._cache.evict(business_id)
            try:
                self._store.mark_needs_reauth(
                    business_id,
                    only_if_connected=isinstance(error, CredentialMissingError),
                )
            except Exception:
                logger.warning("Failed to mark business %s as needing reauth", business_id, exc_info=True)
        else:
            logger.error(
                "Google provider call failed for business %s (status=%s): %s",
                business_id,
                classified.http_status,
                classified.message,
            )
        return classified.to_exception()

    def handle_if_reauth(self, business_id: str, error: BaseException) -> bool:
        """Apply the policy to a best-effort failure; returns True when it required reauth."""
        if not classify(error).is_reauth_required:
            return False
        self.handle(business_id, error)
        return True

    @contextmanager
    def guard(self, business_id: str) -> Iterator[None]:
        """Translate provider failures raised inside the block into domain errors."""
        try:
            yield
        except CredentialMissingError as exc:
            raise self.handle(business_id, exc) from exc
        except CalendarIntegrationError:
            raise
        except Exception as exc:
            raise self.handle(business_id, exc) from exc
