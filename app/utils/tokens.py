import re
import uuid

PUBLIC_TOKEN_LENGTH = 16
PUBLIC_TOKEN_PATTERN = re.compile(r"^[A-Z0-9]{16}$")


def generate_public_token() -> str:
    """
    Mint the short identifier used in public verification URLs.

    Derived from a random UUID, so it carries no information about the
    record's primary key. Uniqueness is enforced by the ``records`` table;
    callers retry on a constraint violation.
    """
    return uuid.uuid4().hex[:PUBLIC_TOKEN_LENGTH].upper()


def looks_like_record_id(identifier: str) -> bool:
    """Record ids are hyphenated UUIDs; public tokens never contain a hyphen."""
    return "-" in identifier
