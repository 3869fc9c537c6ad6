"""Batch sequencing for multi-listing renewal reminders.

An owner with several expiring listings is asked about them one at a time.
When one conversation in a batch is finished the next pending one is
activated and its prompt is queued.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from core.logging_config import get_logger
from core.models import ActionTaken, ConversationState, MessageSource, RenewalConversation
from core.types import Outbox
from services import messages
from services.conversation_store import ConversationStore

LOGGER = get_logger(__name__)


class BatchSequencer:
    """Activates the next pending conversation of a batch."""

    def __init__(self, store: ConversationStore, outbox: Outbox):
        self.store = store
        self.outbox = outbox

    def advance(self, finished: RenewalConversation, now: datetime) -> Optional[RenewalConversation]:
        """
        Move the next pending conversation in ``finished``'s batch to awaiting_availability.

        Returns:
            The activated conversation, or None if the batch is finished.
        """
        if not finished.batch_id or finished.listing_index is None:
            return None

        after_index = finished.listing_index
        while True:
            upcoming = self.store.next_pending_in_batch(finished.batch_id, after_index)
            if upcoming is None:
                LOGGER.info(f"Batch {finished.batch_id} finished")
                return None

            listing = self.store.get_listing(upcoming.listing_id)
            if listing is not None:
                break

            # The listing was removed after the batch was created
            LOGGER.warning(
                f"Skipping batch conversation {upcoming.id}: listing {upcoming.listing_id} no longer exists"
            )
            self.store.update(
                upcoming,
                now=now,
                state=ConversationState.TIMEOUT,
                action_taken=ActionTaken.TIMEOUT.value,
            )
            after_index = upcoming.listing_index

        self.store.update(
            upcoming,
            now=now,
            state=ConversationState.AWAITING_AVAILABILITY,
            message_sent_at=now,
        )

        total = upcoming.total_in_batch or finished.total_in_batch or upcoming.listing_index
        remaining = max(1, total - upcoming.listing_index + 1)
        self.outbox.sms(
            upcoming.phone_number,
            messages.next_in_batch_prompt(listing, remaining),
            MessageSource.RENEWAL_REMINDER.value,
            conversation_id=upcoming.id,
            listing_id=listing.id,
        )

        LOGGER.info(
            f"Batch {finished.batch_id}: activated conversation {upcoming.id} "
            f"(listing {upcoming.listing_index} of {total})"
        )
        return upcoming


__all__ = ["BatchSequencer"]
