"""
Donor response tokens

Format: "{donorId}-{requestId}-{issuedAtMillis}". Ids are hyphen-free hex
uuids. A donor id must never contain a hyphen: it is always the first part.
When a request id does contain hyphens, every part between the first and the
last is treated as the request id.
"""

from datetime import datetime
from typing import NamedTuple

from haemo_core.config import TOKEN_CONFIG
from haemo_core.exceptions import InvalidTokenError, TokenExpiredError, ValidationError


class ResponseToken(NamedTuple):
    donor_id: str
    request_id: str
    issued_at_ms: int


def to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def mint_token(donor_id: str, request_id: str, issued_at: datetime) -> str:
    if not donor_id or "-" in donor_id:
        raise ValidationError(
            "Donor id cannot be used in a response token; ids must be hyphen-free",
            details={"donor_id": donor_id},
        )
    return f"{donor_id}-{request_id}-{to_millis(issued_at)}"


def parse_token(token: str, now: datetime) -> ResponseToken:
    """
    Split and validate a token.

    Raises InvalidTokenError for fewer than three parts or a non-numeric
    timestamp, TokenExpiredError when the token is 4 hours old or older.
    """
    if not token:
        raise InvalidTokenError("Missing token")

    parts = token.split("-")
    if len(parts) < 3:
        raise InvalidTokenError()

    donor_id, request_id, timestamp = parts[0], "-".join(parts[1:-1]), parts[-1]
    if not donor_id or not request_id or not timestamp.isdigit():
        raise InvalidTokenError()

    issued_at_ms = int(timestamp)
    age_ms = to_millis(now) - issued_at_ms
    if age_ms >= TOKEN_CONFIG["expiry_ms"]:
        raise TokenExpiredError(age_ms)

    return ResponseToken(donor_id=donor_id, request_id=request_id, issued_at_ms=issued_at_ms)
