"""Hardware address normalization."""

from __future__ import annotations

import re

from .errors import InvalidIdentityError

_HEX12 = re.compile(r"^[0-9a-f]{12}$")
_GROUPED = re.compile(r"^[0-9a-f]{2}([:-])[0-9a-f]{2}(\1[0-9a-f]{2}){4}$")
_DOTTED = re.compile(r"^[0-9a-f]{4}\.[0-9a-f]{4}\.[0-9a-f]{4}$")


def normalize_identity(value: str | None) -> str:
    """Return the canonical ``aa-bb-cc-dd-ee-ff`` form of a MAC address.

    Accepts colon or dash separated pairs, Cisco dotted triplets and bare hex,
    in any case. Anything else raises InvalidIdentityError.
    """
    if not isinstance(value, str):
        raise InvalidIdentityError(f"MAC address must be a string, got {type(value).__name__}")

    raw = value.strip().lower()
    if not raw:
        raise InvalidIdentityError("MAC address is empty")

    if _GROUPED.match(raw) or _DOTTED.match(raw):
        digits = re.sub(r"[:.-]", "", raw)
    elif _HEX12.match(raw):
        digits = raw
    else:
        raise InvalidIdentityError(
            f"'{value}' is not a MAC address (expected AA:BB:CC:DD:EE:FF or AA-BB-CC-DD-EE-FF)"
        )

    return "-".join(digits[i : i + 2] for i in range(0, 12, 2))


def identity_slug(identity: str) -> str:
    """Entity-key form of a canonical identity (``aa_bb_cc_dd_ee_ff``)."""
    return identity.replace("-", "_")
