"""Outbound SMS templates.

Every message carries the "<Platform> Alert: " prefix and is capped at two
SMS segments.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from core.config import get_settings
from core.models import ConversationKind, Listing

MAX_MESSAGE_LENGTH = 320

KIND_LABELS = {
    ConversationKind.RENEWAL.value: "renewal",
    ConversationKind.CALLBACK.value: "inquiry",
    ConversationKind.REPORT_RENTED.value: "rented report",
    ConversationKind.UNSOLICITED.value: "deactivation",
    ConversationKind.DISAMBIGUATION.value: "question",
}


def _render(text: str) -> str:
    settings = get_settings()
    message = f"{settings.platform_name} Alert: {text}"
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 3].rstrip() + "..."
    return message


def _dashboard() -> str:
    return get_settings().dashboard_url


# =============================================================================
# Listing descriptors
# =============================================================================


def format_date(value: datetime) -> str:
    """Format as e.g. 'Jan 5, 2026'."""
    return f"{value:%b} {value.day}, {value.year}"


def format_price(listing: Listing) -> str:
    price = listing.asking_price if listing.is_sale and listing.asking_price else listing.price
    if not price:
        return "Call for price"
    price = float(price)
    if listing.is_sale:
        if price >= 1_000_000:
            return f"${price / 1_000_000:.1f}M"
        return f"${round(price / 1000)}K"
    return f"${price:,.0f}"


def format_location(listing: Listing) -> str:
    if listing.is_sale and listing.full_address:
        return listing.full_address
    return listing.location or listing.neighborhood or "your listing"


def format_bedrooms(listing: Listing) -> str:
    if listing.bedrooms is None:
        return ""
    if listing.bedrooms == 0:
        return "Studio"
    return f"{listing.bedrooms}BR"


def listing_identifier(listing: Listing) -> str:
    """'<location> for <price>', used in availability prompts."""
    return f"{format_location(listing)} for {format_price(listing)}"


def listing_descriptor(listing: Optional[Listing], kind: Optional[str] = None) -> str:
    """
    Short menu label: bedrooms, cross street or neighborhood, kind label.

    e.g. "3BR on E 15th (renewal)"
    """
    if listing is None:
        base = "Unknown listing"
    else:
        bedrooms = format_bedrooms(listing)
        place = listing.location or listing.neighborhood or listing.full_address
        if bedrooms and place:
            base = f"{bedrooms} on {place}"
        else:
            base = bedrooms or place or f"Listing #{listing.id}"
    label = KIND_LABELS.get(kind or "")
    return f"{base} ({label})" if label else base


def _numbered(labels: Iterable[str]) -> str:
    return "\n".join(f"{i}. {label}" for i, label in enumerate(labels, start=1))


# =============================================================================
# Availability / renewal
# =============================================================================


def availability_prompt(listing: Listing) -> str:
    return _render(
        f"Is your listing at {listing_identifier(listing)} still available? "
        f"Reply YES or NO if {listing.rented_sold_word}."
    )


def next_in_batch_prompt(listing: Listing, remaining: int) -> str:
    return _render(
        f"Next ({remaining} remaining): Is the one at {listing_identifier(listing)} "
        f"still available? Reply YES or NO if {listing.rented_sold_word}."
    )


def yes_no_prompt(listing: Optional[Listing]) -> str:
    word = listing.rented_sold_word if listing else "rented"
    return _render(f"Please reply YES if available or NO if {word}.")


def single_listing_help(listing: Listing, expires_at: Optional[datetime]) -> str:
    when = f"expires {format_date(expires_at)}" if expires_at else "is up for renewal"
    return _render(
        f"Your listing at {listing_identifier(listing)} {when}. "
        f"Reply YES to extend or NO if {listing.rented_sold_word}."
    )


def batch_summary(listings: Sequence[Listing], current_index: Optional[int]) -> str:
    lines = _numbered(f"{format_location(l)} ({format_price(l)})" for l in listings)
    current = f"listing {current_index}" if current_index else "the first listing"
    return _render(
        f"Your expiring listings:\n{lines}\n\nCurrently asking about {current}. Reply YES or NO."
    )


def extended_confirmation(new_expiration: datetime, days: int) -> str:
    return _render(f"Extended {days} days. New expiration: {format_date(new_expiration)}.")


# =============================================================================
# Deactivation / attribution
# =============================================================================


def attribution_question(listing: Optional[Listing]) -> str:
    word = listing.tenant_buyer_word if listing else "tenant"
    platform = get_settings().platform_name
    return _render(f"Listing deactivated. Did the {word} find you through {platform}? Reply YES or NO.")


def attribution_thanks() -> str:
    return _render(f"Thank you! Your feedback helps us improve {get_settings().platform_name}.")


def kept_active_confirmation(listing: Optional[Listing]) -> str:
    where = f" at {format_location(listing)}" if listing else ""
    return _render(f"Thanks for confirming. Your listing{where} will stay active.")


def report_prompt(listing: Optional[Listing]) -> str:
    word = listing.rented_sold_word if listing else "rented"
    return _render(f"Please reply YES if it's still available or NO if it has been {word}.")


# =============================================================================
# Menus
# =============================================================================


def selection_menu(labels: Sequence[str]) -> str:
    return _render(f"Which listing was rented or sold?\n{_numbered(labels)}\nReply with the number.")


def disambiguation_menu(labels: Sequence[str]) -> str:
    return _render(
        f"We have a few open questions for you. Which listing is your reply about?\n"
        f"{_numbered(labels)}\nReply with the number."
    )


def invalid_number(count: int) -> str:
    return _render(f"Please reply with a number from 1 to {count}.")


# =============================================================================
# Dashboard redirects and fallbacks
# =============================================================================


def expired_link() -> str:
    platform = get_settings().platform_name
    return _render(
        f"This renewal link has expired. Please log into your {platform} dashboard "
        f"at {_dashboard()} to manage your listings."
    )


def conversation_closed() -> str:
    return _render(
        f"That question has already been closed. Please manage your listings at {_dashboard()}."
    )


def no_matching_listing() -> str:
    return _render(
        f"We couldn't find an active listing for this number. "
        f"Please manage your listings at {_dashboard()}."
    )


def too_many_listings(count: int) -> str:
    return _render(
        f"You have {count} active listings. Please deactivate the one that was "
        f"rented or sold at {_dashboard()}."
    )


def fallback_with_listings() -> str:
    return _render(f"Text RENTED to deactivate a listing, or manage your listings at {_dashboard()}.")


def fallback_unlinked() -> str:
    platform = get_settings().platform_name
    return _render(
        f"This number isn't linked to any {platform} listing. "
        f"Visit {_dashboard()} to manage your account."
    )


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "KIND_LABELS",
    "format_date",
    "format_price",
    "format_location",
    "format_bedrooms",
    "listing_identifier",
    "listing_descriptor",
    "availability_prompt",
    "next_in_batch_prompt",
    "yes_no_prompt",
    "single_listing_help",
    "batch_summary",
    "extended_confirmation",
    "attribution_question",
    "attribution_thanks",
    "kept_active_confirmation",
    "report_prompt",
    "selection_menu",
    "disambiguation_menu",
    "invalid_number",
    "expired_link",
    "conversation_closed",
    "no_matching_listing",
    "too_many_listings",
    "fallback_with_listings",
    "fallback_unlinked",
]
