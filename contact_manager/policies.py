"""Phone number policies.

Two policies exist and exactly one is active per process, chosen by the
``PHONE_POLICY`` setting:

* ``lenient`` accepts digits, spaces, ``+``, ``-`` and parentheses with an
  overall length of 7 to 15 characters. Phone numbers may repeat.
* ``strict`` accepts exactly ten digits and no punctuation. Phone numbers
  are unique across all contacts.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern


@dataclass(frozen=True)
class PhonePolicy:
    name: str
    pattern: Pattern[str]
    min_length: int
    max_length: int
    unique: bool
    message: str

    def check(self, phone: str) -> Optional[str]:
        """Return an error message for ``phone`` or ``None`` when it is valid."""
        if not self.pattern.match(phone):
            return self.message
        if not self.min_length <= len(phone) <= self.max_length:
            return self.message
        return None


LENIENT = PhonePolicy(
    name="lenient",
    pattern=re.compile(r"^[0-9+\-\s()]+$"),
    min_length=7,
    max_length=15,
    unique=False,
    message="Phone number must be 7-15 characters of digits, spaces, +, - or parentheses",
)

STRICT = PhonePolicy(
    name="strict",
    pattern=re.compile(r"^[0-9]{10}$"),
    min_length=10,
    max_length=10,
    unique=True,
    message="Please enter a valid 10-digit phone number",
)

POLICIES = {policy.name: policy for policy in (LENIENT, STRICT)}


def get_phone_policy_by_name(name: str) -> PhonePolicy:
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown phone policy: {name}") from None
