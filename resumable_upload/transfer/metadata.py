"""
Transfer Metadata

Design Decision: What the Metadata Record Holds
================================================

Options Considered:
1. Record the received byte count alongside the declared length
   - Easy to answer offset queries
   - Drifts from the data file after a crash mid-write

2. Record only what the client declared at creation
   - Offset is always the data file size
   - Nothing to reconcile after a restart

Decision: Option 2, plus a finalization marker
- declared_length and client_metadata are fixed at creation
- final_name is written just before promotion, finalized_at once it
  succeeds, so later chunk writes can be refused without keeping a
  registry. A name with no finalized_at means a promotion was attempted.
- The received length is never stored here

Format: JSON, matching the rest of the on-disk state.
"""

import json
import time
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional, Union

from .errors import InvalidArgument

# Largest byte count accepted, the signed 64-bit range of HTTP clients
MAX_LENGTH = 2**63 - 1


def parse_length(value: Union[int, str, None], name: str = 'length') -> int:
    """
    Parse a non-negative byte count.

    Accepts an int or a string of ASCII digits (as sent in headers).

    Raises:
        InvalidArgument: if the value is missing or malformed
    """
    if value is None:
        raise InvalidArgument(f"{name} is required")

    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid {name}: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise InvalidArgument(f"Invalid {name}: {value} is negative")
        if value > MAX_LENGTH:
            raise InvalidArgument(f"Invalid {name}: {value} is too large")
        return value

    if isinstance(value, str):
        text = value.strip()
        if text and text.isascii() and text.isdigit():
            if len(text.lstrip("0")) > len(str(MAX_LENGTH)):
                raise InvalidArgument(f"Invalid {name}: too many digits")
            value = int(text)
            if value > MAX_LENGTH:
                raise InvalidArgument(f"Invalid {name}: {value} is too large")
            return value

    raise InvalidArgument(f"Invalid {name}: {value!r}")


@dataclass
class TransferMetadata:
    """Durable record describing one transfer."""
    declared_length: int
    client_metadata: str = ""
    created_at: float = field(default_factory=time.time)

    # final_name is recorded before promotion, finalized_at after it
    final_name: Optional[str] = None
    finalized_at: Optional[float] = None

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    @property
    def is_promoting(self) -> bool:
        return self.final_name is not None and self.finalized_at is None

    def mark_finalized(self, final_name: str):
        """Record that the data was promoted under final_name."""
        self.final_name = final_name
        self.finalized_at = time.time()

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'TransferMetadata':
        return cls(
            declared_length=parse_length(data['declared_length'], 'declared_length'),
            client_metadata=data.get('client_metadata', ''),
            created_at=data.get('created_at', 0.0),
            final_name=data.get('final_name'),
            finalized_at=data.get('finalized_at'),
        )

    def to_json(self, indent: int = None) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'TransferMetadata':
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))
