"""Address resolution — picks one canonical shipping address from several sources.

Sources are tried in a fixed priority order:

1. shipping details collected by the payment processor's checkout page
2. billing/customer details collected by the payment processor
3. the address stub the client sent along in checkout metadata

The first candidate with every required field wins as-is. Only contact fields
(name, email, phone) are borrowed from lower-priority candidates; street-level
fields are never mixed, so the result always belongs to a single source.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum

from shared.errors import IncompleteAddressError

REQUIRED_FIELDS = ("street1", "city", "state", "postal_code", "country")
CONTACT_FIELDS = ("name", "email", "phone")


class AddressSource(Enum):
    PROCESSOR_SHIPPING = "processor_shipping"
    PROCESSOR_BILLING = "processor_billing"
    CLIENT_METADATA = "client_metadata"


_PRIORITY = {
    AddressSource.PROCESSOR_SHIPPING: 0,
    AddressSource.PROCESSOR_BILLING: 1,
    AddressSource.CLIENT_METADATA: 2,
}


@dataclass(frozen=True)
class AddressCandidate:
    """A possibly partial address reported by one source."""

    source: AddressSource
    name: str = ""
    email: str = ""
    phone: str = ""
    street1: str = ""
    street2: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not (getattr(self, name) or "").strip()]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True)
class CanonicalAddress:
    """A complete shipping address, taken from exactly one source."""

    name: str
    email: str
    phone: str
    street1: str
    street2: str
    city: str
    state: str
    postal_code: str
    country: str
    source: AddressSource

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["source"] = self.source.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CanonicalAddress":
        return cls(
            name=data.get("name") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            street1=data.get("street1") or "",
            street2=data.get("street2") or "",
            city=data.get("city") or "",
            state=data.get("state") or "",
            postal_code=data.get("postal_code") or "",
            country=data.get("country") or "",
            source=AddressSource(data.get("source") or AddressSource.CLIENT_METADATA.value),
        )


def resolve(candidates) -> CanonicalAddress:
    """Return the canonical address for the given candidates.

    ``None`` entries are skipped so callers can pass optional sources directly.
    Raises IncompleteAddressError naming the fields missing from the most
    complete candidate when none qualifies.
    """
    ordered = sorted((c for c in candidates if c is not None), key=lambda c: _PRIORITY[c.source])
    if not ordered:
        raise IncompleteAddressError(list(REQUIRED_FIELDS))

    winner = next((c for c in ordered if c.is_complete), None)
    if winner is None:
        closest = min(ordered, key=lambda c: len(c.missing_fields()))
        raise IncompleteAddressError(closest.missing_fields())

    # Contacts only ever come from sources ranked below the winner
    lower = ordered[ordered.index(winner) + 1 :]
    contacts = {}
    for name in CONTACT_FIELDS:
        if getattr(winner, name):
            continue
        donor = next((c for c in lower if getattr(c, name)), None)
        if donor is not None:
            contacts[name] = getattr(donor, name)
    winner = replace(winner, **contacts) if contacts else winner

    return CanonicalAddress(
        name=winner.name,
        email=winner.email,
        phone=winner.phone,
        street1=winner.street1,
        street2=winner.street2,
        city=winner.city,
        state=winner.state,
        postal_code=winner.postal_code,
        country=winner.country,
        source=winner.source,
    )
