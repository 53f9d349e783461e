from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ProofState(Enum):
    UNSPENT = "Unspent"
    PENDING = "Pending"
    SPENT = "Spent"


class MintQuoteState(Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    ISSUED = "Issued"


class MeltQuoteState(Enum):
    UNPAID = "Unpaid"
    PENDING = "Pending"
    PAID = "Paid"


class HttpMethod(Enum):
    GET = "GET"
    POST = "POST"


class AuthRequired(Enum):
    CLEAR = "Clear"
    BLIND = "Blind"


@dataclass
class MintVersion:
    name:    str
    version: str


@dataclass
class ContactInfo:
    method: str
    info:   str


@dataclass
class MintInfo:
    name:             Optional[str] = None
    pubkey:           Optional[bytes] = None
    version:          Optional[MintVersion] = None
    description:      Optional[str] = None
    description_long: Optional[str] = None
    contact:          list[ContactInfo] = field(default_factory=list)
    motd:             Optional[str] = None
    icon_url:         Optional[str] = None
    urls:             list[str] = field(default_factory=list)
    tos_url:          Optional[str] = None
    time:             Optional[int] = None


@dataclass
class QuoteTTL:
    mint_ttl: int
    melt_ttl: int


@dataclass
class Keyset:
    id:                    bytes
    unit:                  str
    active:                bool
    valid_from:            int
    final_expiry:          Optional[int]
    derivation_path:       str
    derivation_path_index: Optional[int]
    max_order:             int
    input_fee_ppk:         int

    @property
    def id_hex(self) -> str:
        return self.id.hex()


@dataclass
class BlindSignatureDleq:
    e: bytes
    s: bytes


@dataclass
class ProofDleq:
    e: bytes
    s: bytes
    r: bytes


@dataclass
class BlindSignature:
    blinded_message: bytes
    keyset_id:       bytes
    amount:          int
    c:               bytes
    dleq:            Optional[BlindSignatureDleq]
    quote_id:        Optional[bytes]
    created_time:    int


@dataclass
class Proof:
    y:            bytes
    amount:       int
    keyset_id:    bytes
    secret:       str
    c:            bytes
    witness:      Optional[str]
    dleq:         Optional[ProofDleq]
    state:        ProofState
    quote_id:     Optional[bytes]
    created_time: int


@dataclass
class MintQuote:
    id:                bytes
    amount:            int
    unit:              str
    request:           str
    state:             MintQuoteState
    expiry:            int
    request_lookup_id: str
    pubkey:            Optional[bytes]
    created_time:      int
    payment_method:    str


@dataclass
class MeltQuote:
    id:                bytes
    unit:              str
    amount:            int
    request:           str
    fee_reserve:       int
    state:             MeltQuoteState
    expiry:            int
    payment_preimage:  Optional[str]
    request_lookup_id: str
    msat_to_pay:       Optional[int]
    created_time:      int
    paid_time:         Optional[int]


@dataclass
class MeltRequest:
    """Inputs and change outputs submitted against one melt quote."""
    quote_id:    bytes
    inputs:      list[bytes]
    outputs:     Optional[list[bytes]]
    method:      str
    unit:        str
    payment_key: str


@dataclass
class AuthProof:
    y:         bytes
    keyset_id: bytes
    secret:    str
    c:         bytes
    dleq:      Optional[ProofDleq]
    state:     ProofState


@dataclass
class ProtectedEndpoint:
    method: HttpMethod
    path:   str
    auth:   AuthRequired
