"""Page text heuristics: blocking conditions and booking confirmations."""

import re

from backend.outing.models.booking import BookingStatus

# Checked in order; the first matching condition wins
BLOCKING_KEYWORDS: list[tuple[BookingStatus, tuple[str, ...]]] = [
    (BookingStatus.sold_out, ("sold out", "sold_out", "no tickets available")),
    (BookingStatus.waitlist, ("join waitlist", "join the waitlist", "waitlist only", "add to waitlist")),
    (BookingStatus.captcha_blocked, ("captcha", "recaptcha", "hcaptcha")),
    (BookingStatus.login_required, ("must sign in", "please log in", "login required")),
]

BLOCKING_MESSAGES: dict[BookingStatus, str] = {
    BookingStatus.sold_out: "Event is sold out",
    BookingStatus.waitlist: "Event is at capacity — only waitlist available",
    BookingStatus.captcha_blocked: "Captcha detected — cannot proceed with automated booking",
    BookingStatus.login_required: "Login required to book this event",
}

SUCCESS_PHRASES = (
    "thanks for your order",
    "your order is confirmed",
    "you're going",
    "registration confirmed",
    "successfully registered",
    "take me to my tickets",
)

CONFIRMED = "CONFIRMED"

_ORDER_NUMBER = re.compile(r"#(\d{8,15})")
_LABELLED_NUMBER = re.compile(
    r"(?:confirmation|order|booking|reference|ticket)\s*(?:#|number|no\.?|id|:)\s*:?\s*([A-Z0-9][A-Z0-9-]{3,19})",
    re.IGNORECASE,
)


def detect_blocking(text: str) -> BookingStatus | None:
    """First blocking condition found in the page text, if any."""
    lowered = text.lower()
    for status, keywords in BLOCKING_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return status
    return None


def blocking_message(status: BookingStatus) -> str:
    return BLOCKING_MESSAGES.get(status, status.value)


def has_success_phrase(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in SUCCESS_PHRASES)


def extract_confirmation(text: str) -> str | None:
    """Confirmation number from page text.

    Tries an order number like "#1234567890", then a labelled reference such as
    "Booking ID: AB12-34". Purely alphabetic references are ignored. Falls back
    to CONFIRMED when a success phrase is present.
    """
    match = _ORDER_NUMBER.search(text)
    if match:
        return match.group(1)

    for match in _LABELLED_NUMBER.finditer(text):
        candidate = match.group(1)
        if any(ch.isdigit() for ch in candidate):
            return candidate

    if has_success_phrase(text):
        return CONFIRMED
    return None
