"""
Observed keys.

An observed key names one piece of mutable ledger state. Keys are frozen and
hashable so the multiplexer can use them as registry keys; addresses are
lower-cased on construction so the same account always maps to the same key.
"""

import re
from dataclasses import dataclass

from .errors import InvalidAddressError

Address = str

NULL_ADDRESS: Address = "0x0000000000000000000000000000000000000000"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def check_address(value: object) -> Address:
    """Validate and normalise an address."""
    if not is_address(value):
        raise InvalidAddressError(f"Not a valid address: {value!r}")
    return value.lower()


class ObservedKey:
    """Marker base class for everything the multiplexer can observe."""

    __slots__ = ()


@dataclass(frozen=True)
class EthBalanceKey(ObservedKey):
    """Native coin balance of an account."""

    owner: Address

    def __post_init__(self):
        object.__setattr__(self, "owner", check_address(self.owner))


@dataclass(frozen=True)
class TokenBalanceKey(ObservedKey):
    """Token balance of an account."""

    token: Address
    owner: Address

    def __post_init__(self):
        object.__setattr__(self, "token", check_address(self.token))
        object.__setattr__(self, "owner", check_address(self.owner))


@dataclass(frozen=True)
class AllowanceKey(ObservedKey):
    """Amount of `token` that `spender` may move on behalf of `owner`."""

    token: Address
    owner: Address
    spender: Address

    def __post_init__(self):
        object.__setattr__(self, "token", check_address(self.token))
        object.__setattr__(self, "owner", check_address(self.owner))
        object.__setattr__(self, "spender", check_address(self.spender))
