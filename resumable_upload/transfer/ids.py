"""
Transfer Identifiers

Ids are 16 random bytes, hex encoded: unique, unguessable and safe to
use as a directory name.
"""

import re
import secrets

ID_BYTES = 16

_ID_PATTERN = re.compile(r'^[0-9a-f]{%d}$' % (ID_BYTES * 2))


def generate_transfer_id() -> str:
    """Generate a fresh transfer id."""
    return secrets.token_hex(ID_BYTES)


def is_valid_transfer_id(transfer_id: str) -> bool:
    """Check that an id has the shape generate_transfer_id() produces."""
    return bool(transfer_id) and _ID_PATTERN.match(transfer_id) is not None
