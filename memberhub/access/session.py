"""
Session provider adapter.

Tracks the identity signed in on this client instance and announces every
lifecycle change on the event bus. Nothing else in the access core reacts
to sign-in or sign-out directly; the ResolutionCache subscribes to these
events.
"""

from __future__ import annotations

import logging

from memberhub.access.tokens import TokenPair, create_token_pair, decode_token
from memberhub.core.events import (
    Event,
    EventBus,
    signed_in,
    signed_out,
    token_refreshed,
)

logger = logging.getLogger(__name__)


class SessionProvider:
    """
    Identity lifecycle events.

    With single_identity=True (a client instance, e.g. one browser) the
    provider tracks who is signed in and signing in as someone else signs
    the previous subject out first. A server handling many subjects at
    once uses single_identity=False and only announces events.

    Usage:
        session = SessionProvider(bus)
        await session.sign_in("user_123")
        session.get_current_subject()  # "user_123"
        await session.sign_out()
    """

    def __init__(self, event_bus: EventBus, single_identity: bool = True):
        self.event_bus = event_bus
        self.single_identity = single_identity
        self._current: str | None = None

    def get_current_subject(self) -> str | None:
        return self._current

    async def sign_in(self, subject_id: str) -> TokenPair:
        """
        Sign a subject in and issue tokens.

        On a single-identity client, signing in over an existing session
        signs the previous subject out first, so its role can never carry
        over.
        """
        if self.single_identity:
            if self._current and self._current != subject_id:
                await self.sign_out()
            self._current = subject_id

        logger.info(f"Signed in: {subject_id}")
        await self._publish(signed_in(subject_id))
        return create_token_pair(subject_id)

    async def sign_out(self, subject_id: str | None = None) -> None:
        """Sign out the given subject, or whoever is signed in here."""
        subject_id = subject_id or self._current
        if subject_id == self._current:
            self._current = None
        logger.info(f"Signed out: {subject_id or 'unknown subject'}")
        await self._publish(signed_out(subject_id))

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            TokenError: the refresh token is invalid or expired
        """
        payload = decode_token(refresh_token, expected_type="refresh")
        await self._publish(token_refreshed(payload.sub))
        return create_token_pair(payload.sub)

    async def _publish(self, event: Event) -> None:
        await self.event_bus.publish(event)
