import logging
import re
from typing import Optional

import bcrypt

from app.core.config import settings

logger = logging.getLogger(__name__)

# Algorithm tag + two-digit cost: "$2a$10$", "$2b$12$", ...
BCRYPT_PREFIX = re.compile(r"^\$2[aby]\$\d{2}\$")

def is_hashed(value: Optional[str]) -> bool:
    """
    True when the value carries a bcrypt algorithm tag and cost.
    Only the prefix is checked: anything tagged is left alone, never re-hashed.
    """
    if not value or not isinstance(value, str):
        return False
    return bool(BCRYPT_PREFIX.match(value))

def ensure_hashed(value: Optional[str]) -> str:
    """
    Returns a bcrypt hash for a plaintext credential, or the value unchanged
    if it is already hashed. Hashing twice would corrupt the credential.
    Raises ValueError on missing input.
    """
    if value is None or value == "":
        raise ValueError("Cannot hash an empty password.")

    if is_hashed(value):
        logger.debug("Password already hashed, leaving as-is")
        return value

    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(value.encode("utf-8"), salt).decode("utf-8")

def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not is_hashed(hashed):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Tagged but malformed stored value
        return False
