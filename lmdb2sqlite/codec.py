"""
Record codec for the pinned LMDB source layout (version 5).

Every value is a fixed sequence of fields. Integers are unsigned big-endian
and fixed width, strings and lists are length-prefixed, optional fields carry
a one-byte presence flag and enum states are one-byte tags looked up in the
explicit tables below. Anything that does not match the layout exactly is a
``DecodeError`` carrying the table name and the byte offset of the fault.

The ``encode_*`` functions write the same layout. They are the inverse of the
decoders and are used to build source stores for tests.
"""

import struct
import uuid

from lmdb2sqlite.errors import DecodeError
from lmdb2sqlite.types import (
    AuthProof, AuthRequired, BlindSignature, BlindSignatureDleq, ContactInfo,
    HttpMethod, Keyset, MeltQuote, MeltQuoteState, MeltRequest, MintInfo, MintQuote,
    MintQuoteState, MintVersion, Proof, ProofDleq, ProofState,
    ProtectedEndpoint, QuoteTTL,
)

# ═════════════════════════════════════════════════════════════
# Source table names
# ═════════════════════════════════════════════════════════════

CONFIG_TABLE = "config"
KEYSETS_TABLE = "keysets"
BLIND_SIGNATURES_TABLE = "blinded_signatures"
PROOFS_TABLE = "proofs"
MINT_QUOTES_TABLE = "mint_quotes"
MELT_QUOTES_TABLE = "melt_quotes"
MELT_REQUESTS_TABLE = "melt_requests"
ENDPOINTS_TABLE = "endpoints"

DB_VERSION_KEY = b"db_version"
MINT_INFO_KEY = b"mint_info"
QUOTE_TTL_KEY = b"quote_ttl"

PUBKEY_LEN = 33
KEYSET_ID_LEN = 8
QUOTE_ID_LEN = 16
SCALAR_LEN = 32

# ═════════════════════════════════════════════════════════════
# Enum tag tables (both directions)
# ═════════════════════════════════════════════════════════════

PROOF_STATE_TAGS = {
    0: ProofState.UNSPENT,
    1: ProofState.PENDING,
    2: ProofState.SPENT,
}
MINT_QUOTE_STATE_TAGS = {
    0: MintQuoteState.UNPAID,
    1: MintQuoteState.PAID,
    2: MintQuoteState.ISSUED,
}
MELT_QUOTE_STATE_TAGS = {
    0: MeltQuoteState.UNPAID,
    1: MeltQuoteState.PENDING,
    2: MeltQuoteState.PAID,
}
HTTP_METHOD_TAGS = {
    0: HttpMethod.GET,
    1: HttpMethod.POST,
}
AUTH_REQUIRED_TAGS = {
    0: AuthRequired.CLEAR,
    1: AuthRequired.BLIND,
}

PROOF_STATE_CODES = {v: k for k, v in PROOF_STATE_TAGS.items()}
MINT_QUOTE_STATE_CODES = {v: k for k, v in MINT_QUOTE_STATE_TAGS.items()}
MELT_QUOTE_STATE_CODES = {v: k for k, v in MELT_QUOTE_STATE_TAGS.items()}
HTTP_METHOD_CODES = {v: k for k, v in HTTP_METHOD_TAGS.items()}
AUTH_REQUIRED_CODES = {v: k for k, v in AUTH_REQUIRED_TAGS.items()}

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")


# ═════════════════════════════════════════════════════════════
# Field reader / writer
# ═════════════════════════════════════════════════════════════

class FieldReader:
    """Sequential reader over one raw key or value."""

    def __init__(self, table: str, data: bytes, part: str = "value"):
        self.table = table
        self.data = bytes(data)
        self.part = part
        self.offset = 0

    def fail(self, reason: str, offset: int = None):
        if offset is None:
            offset = self.offset
        raise DecodeError(self.table, offset, f"{self.part}: {reason}")

    def take(self, size: int, what: str) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            self.fail(f"truncated {what} (need {size} bytes, {len(self.data) - self.offset} left)")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def _unpack(self, fmt: struct.Struct, what: str) -> int:
        return fmt.unpack(self.take(fmt.size, what))[0]

    def u8(self, what="u8") -> int:
        return self._unpack(_U8, what)

    def u16(self, what="u16") -> int:
        return self._unpack(_U16, what)

    def u32(self, what="u32") -> int:
        return self._unpack(_U32, what)

    def u64(self, what="u64") -> int:
        return self._unpack(_U64, what)

    def boolean(self, what="bool") -> bool:
        start = self.offset
        raw = self.u8(what)
        if raw not in (0, 1):
            self.fail(f"invalid {what} byte {raw}", start)
        return raw == 1

    def string(self, what="string") -> str:
        size = self.u32(f"{what} length")
        start = self.offset
        raw = self.take(size, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            self.fail(f"{what} is not valid UTF-8 ({e.reason})", start + e.start)

    def optional(self, read, what="optional"):
        start = self.offset
        flag = self.u8(f"{what} flag")
        if flag == 0:
            return None
        if flag != 1:
            self.fail(f"invalid presence flag {flag} for {what}", start)
        return read()

    def tag(self, table: dict, what: str):
        start = self.offset
        raw = self.u8(what)
        if raw not in table:
            self.fail(f"unknown {what} tag {raw}", start)
        return table[raw]

    def finish(self):
        if self.offset != len(self.data):
            self.fail(f"{len(self.data) - self.offset} trailing bytes")


class FieldWriter:
    def __init__(self):
        self.buf = bytearray()

    def raw(self, data: bytes, size: int = None):
        if size is not None and len(data) != size:
            raise ValueError(f"expected {size} bytes, got {len(data)}")
        self.buf += data

    def u8(self, value: int):
        self.buf += _U8.pack(value)

    def u16(self, value: int):
        self.buf += _U16.pack(value)

    def u32(self, value: int):
        self.buf += _U32.pack(value)

    def u64(self, value: int):
        self.buf += _U64.pack(value)

    def boolean(self, value: bool):
        self.u8(1 if value else 0)

    def string(self, value: str):
        data = value.encode("utf-8")
        self.u32(len(data))
        self.buf += data

    def optional(self, value, write):
        if value is None:
            self.u8(0)
        else:
            self.u8(1)
            write(value)

    def getvalue(self) -> bytes:
        return bytes(self.buf)


def _fixed_key(table: str, raw_key: bytes, size: int, what: str) -> bytes:
    if len(raw_key) != size:
        raise DecodeError(table, 0, f"key: {what} must be {size} bytes, got {len(raw_key)}")
    return bytes(raw_key)


def _expect_key(table: str, raw_key: bytes, expected: bytes):
    if bytes(raw_key) != expected:
        raise DecodeError(table, 0, f"key: expected {expected!r}, got {bytes(raw_key)!r}")


def format_quote_id(quote_id: bytes) -> str:
    return str(uuid.UUID(bytes=quote_id))


# ═════════════════════════════════════════════════════════════
# Config singletons
# ═════════════════════════════════════════════════════════════

def decode_db_version(raw_value: bytes) -> int:
    text = bytes(raw_value).decode("ascii", errors="replace").strip()
    if not text.isdigit():
        raise DecodeError(CONFIG_TABLE, 0, f"value: db_version {text!r} is not a number")
    return int(text)


def encode_db_version(version: int) -> tuple[bytes, bytes]:
    return DB_VERSION_KEY, str(version).encode("ascii")


def decode_mint_info(raw_key: bytes, raw_value: bytes) -> MintInfo:
    _expect_key(CONFIG_TABLE, raw_key, MINT_INFO_KEY)
    r = FieldReader(CONFIG_TABLE, raw_value)
    info = MintInfo()
    info.name = r.optional(lambda: r.string("name"), "name")
    info.pubkey = r.optional(lambda: r.take(PUBKEY_LEN, "pubkey"), "pubkey")
    info.version = r.optional(
        lambda: MintVersion(r.string("version name"), r.string("version")), "version"
    )
    info.description = r.optional(lambda: r.string("description"), "description")
    info.description_long = r.optional(lambda: r.string("description_long"), "description_long")
    info.contact = [
        ContactInfo(r.string("contact method"), r.string("contact info"))
        for _ in range(r.u16("contact count"))
    ]
    info.motd = r.optional(lambda: r.string("motd"), "motd")
    info.icon_url = r.optional(lambda: r.string("icon_url"), "icon_url")
    info.urls = [r.string("url") for _ in range(r.u16("url count"))]
    info.tos_url = r.optional(lambda: r.string("tos_url"), "tos_url")
    info.time = r.optional(lambda: r.u64("time"), "time")
    r.finish()
    return info


def encode_mint_info(info: MintInfo) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.optional(info.name, w.string)
    w.optional(info.pubkey, lambda v: w.raw(v, PUBKEY_LEN))
    w.optional(info.version, lambda v: (w.string(v.name), w.string(v.version)))
    w.optional(info.description, w.string)
    w.optional(info.description_long, w.string)
    w.u16(len(info.contact))
    for contact in info.contact:
        w.string(contact.method)
        w.string(contact.info)
    w.optional(info.motd, w.string)
    w.optional(info.icon_url, w.string)
    w.u16(len(info.urls))
    for url in info.urls:
        w.string(url)
    w.optional(info.tos_url, w.string)
    w.optional(info.time, w.u64)
    return MINT_INFO_KEY, w.getvalue()


def decode_quote_ttl(raw_key: bytes, raw_value: bytes) -> QuoteTTL:
    _expect_key(CONFIG_TABLE, raw_key, QUOTE_TTL_KEY)
    r = FieldReader(CONFIG_TABLE, raw_value)
    ttl = QuoteTTL(mint_ttl=r.u64("mint_ttl"), melt_ttl=r.u64("melt_ttl"))
    r.finish()
    return ttl


def encode_quote_ttl(ttl: QuoteTTL) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.u64(ttl.mint_ttl)
    w.u64(ttl.melt_ttl)
    return QUOTE_TTL_KEY, w.getvalue()


# ═════════════════════════════════════════════════════════════
# Keysets and blind signatures (main and auth stores)
# ═════════════════════════════════════════════════════════════

def decode_keyset(raw_key: bytes, raw_value: bytes) -> Keyset:
    keyset_id = _fixed_key(KEYSETS_TABLE, raw_key, KEYSET_ID_LEN, "keyset id")
    r = FieldReader(KEYSETS_TABLE, raw_value)
    keyset = Keyset(
        id=keyset_id,
        unit=r.string("unit"),
        active=r.boolean("active"),
        valid_from=r.u64("valid_from"),
        final_expiry=r.optional(lambda: r.u64("final_expiry"), "final_expiry"),
        derivation_path=r.string("derivation_path"),
        derivation_path_index=r.optional(
            lambda: r.u32("derivation_path_index"), "derivation_path_index"
        ),
        max_order=r.u8("max_order"),
        input_fee_ppk=r.u64("input_fee_ppk"),
    )
    r.finish()
    return keyset


def encode_keyset(keyset: Keyset) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.string(keyset.unit)
    w.boolean(keyset.active)
    w.u64(keyset.valid_from)
    w.optional(keyset.final_expiry, w.u64)
    w.string(keyset.derivation_path)
    w.optional(keyset.derivation_path_index, w.u32)
    w.u8(keyset.max_order)
    w.u64(keyset.input_fee_ppk)
    if len(keyset.id) != KEYSET_ID_LEN:
        raise ValueError(f"keyset id must be {KEYSET_ID_LEN} bytes")
    return bytes(keyset.id), w.getvalue()


def decode_blind_signature(raw_key: bytes, raw_value: bytes) -> BlindSignature:
    blinded_message = _fixed_key(BLIND_SIGNATURES_TABLE, raw_key, PUBKEY_LEN, "blinded message")
    r = FieldReader(BLIND_SIGNATURES_TABLE, raw_value)
    signature = BlindSignature(
        blinded_message=blinded_message,
        keyset_id=r.take(KEYSET_ID_LEN, "keyset_id"),
        amount=r.u64("amount"),
        c=r.take(PUBKEY_LEN, "c"),
        dleq=r.optional(
            lambda: BlindSignatureDleq(r.take(SCALAR_LEN, "dleq e"), r.take(SCALAR_LEN, "dleq s")),
            "dleq",
        ),
        quote_id=r.optional(lambda: r.take(QUOTE_ID_LEN, "quote_id"), "quote_id"),
        created_time=r.u64("created_time"),
    )
    r.finish()
    return signature


def encode_blind_signature(signature: BlindSignature) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.raw(signature.keyset_id, KEYSET_ID_LEN)
    w.u64(signature.amount)
    w.raw(signature.c, PUBKEY_LEN)
    w.optional(signature.dleq, lambda d: (w.raw(d.e, SCALAR_LEN), w.raw(d.s, SCALAR_LEN)))
    w.optional(signature.quote_id, lambda q: w.raw(q, QUOTE_ID_LEN))
    w.u64(signature.created_time)
    return bytes(signature.blinded_message), w.getvalue()


def _read_proof_dleq(r: FieldReader):
    return r.optional(
        lambda: ProofDleq(
            r.take(SCALAR_LEN, "dleq e"),
            r.take(SCALAR_LEN, "dleq s"),
            r.take(SCALAR_LEN, "dleq r"),
        ),
        "dleq",
    )


def _write_proof_dleq(w: FieldWriter, dleq):
    w.optional(
        dleq,
        lambda d: (w.raw(d.e, SCALAR_LEN), w.raw(d.s, SCALAR_LEN), w.raw(d.r, SCALAR_LEN)),
    )


# ═════════════════════════════════════════════════════════════
# Proofs
# ═════════════════════════════════════════════════════════════

def decode_proof(raw_key: bytes, raw_value: bytes) -> Proof:
    y = _fixed_key(PROOFS_TABLE, raw_key, PUBKEY_LEN, "y")
    r = FieldReader(PROOFS_TABLE, raw_value)
    proof = Proof(
        y=y,
        amount=r.u64("amount"),
        keyset_id=r.take(KEYSET_ID_LEN, "keyset_id"),
        secret=r.string("secret"),
        c=r.take(PUBKEY_LEN, "c"),
        witness=r.optional(lambda: r.string("witness"), "witness"),
        dleq=_read_proof_dleq(r),
        state=r.tag(PROOF_STATE_TAGS, "proof state"),
        quote_id=r.optional(lambda: r.take(QUOTE_ID_LEN, "quote_id"), "quote_id"),
        created_time=r.u64("created_time"),
    )
    r.finish()
    return proof


def encode_proof(proof: Proof) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.u64(proof.amount)
    w.raw(proof.keyset_id, KEYSET_ID_LEN)
    w.string(proof.secret)
    w.raw(proof.c, PUBKEY_LEN)
    w.optional(proof.witness, w.string)
    _write_proof_dleq(w, proof.dleq)
    w.u8(PROOF_STATE_CODES[proof.state])
    w.optional(proof.quote_id, lambda q: w.raw(q, QUOTE_ID_LEN))
    w.u64(proof.created_time)
    return bytes(proof.y), w.getvalue()


def decode_auth_proof(raw_key: bytes, raw_value: bytes) -> AuthProof:
    y = _fixed_key(PROOFS_TABLE, raw_key, PUBKEY_LEN, "y")
    r = FieldReader(PROOFS_TABLE, raw_value)
    proof = AuthProof(
        y=y,
        keyset_id=r.take(KEYSET_ID_LEN, "keyset_id"),
        secret=r.string("secret"),
        c=r.take(PUBKEY_LEN, "c"),
        dleq=_read_proof_dleq(r),
        state=r.tag(PROOF_STATE_TAGS, "proof state"),
    )
    r.finish()
    return proof


def encode_auth_proof(proof: AuthProof) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.raw(proof.keyset_id, KEYSET_ID_LEN)
    w.string(proof.secret)
    w.raw(proof.c, PUBKEY_LEN)
    _write_proof_dleq(w, proof.dleq)
    w.u8(PROOF_STATE_CODES[proof.state])
    return bytes(proof.y), w.getvalue()


# ═════════════════════════════════════════════════════════════
# Quotes
# ═════════════════════════════════════════════════════════════

def decode_mint_quote(raw_key: bytes, raw_value: bytes) -> MintQuote:
    quote_id = _fixed_key(MINT_QUOTES_TABLE, raw_key, QUOTE_ID_LEN, "quote id")
    r = FieldReader(MINT_QUOTES_TABLE, raw_value)
    quote = MintQuote(
        id=quote_id,
        amount=r.u64("amount"),
        unit=r.string("unit"),
        request=r.string("request"),
        state=r.tag(MINT_QUOTE_STATE_TAGS, "mint quote state"),
        expiry=r.u64("expiry"),
        request_lookup_id=r.string("request_lookup_id"),
        pubkey=r.optional(lambda: r.take(PUBKEY_LEN, "pubkey"), "pubkey"),
        created_time=r.u64("created_time"),
        payment_method=r.string("payment_method"),
    )
    r.finish()
    return quote


def encode_mint_quote(quote: MintQuote) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.u64(quote.amount)
    w.string(quote.unit)
    w.string(quote.request)
    w.u8(MINT_QUOTE_STATE_CODES[quote.state])
    w.u64(quote.expiry)
    w.string(quote.request_lookup_id)
    w.optional(quote.pubkey, lambda p: w.raw(p, PUBKEY_LEN))
    w.u64(quote.created_time)
    w.string(quote.payment_method)
    return bytes(quote.id), w.getvalue()


def decode_melt_quote(raw_key: bytes, raw_value: bytes) -> MeltQuote:
    quote_id = _fixed_key(MELT_QUOTES_TABLE, raw_key, QUOTE_ID_LEN, "quote id")
    r = FieldReader(MELT_QUOTES_TABLE, raw_value)
    quote = MeltQuote(
        id=quote_id,
        unit=r.string("unit"),
        amount=r.u64("amount"),
        request=r.string("request"),
        fee_reserve=r.u64("fee_reserve"),
        state=r.tag(MELT_QUOTE_STATE_TAGS, "melt quote state"),
        expiry=r.u64("expiry"),
        payment_preimage=r.optional(lambda: r.string("payment_preimage"), "payment_preimage"),
        request_lookup_id=r.string("request_lookup_id"),
        msat_to_pay=r.optional(lambda: r.u64("msat_to_pay"), "msat_to_pay"),
        created_time=r.u64("created_time"),
        paid_time=r.optional(lambda: r.u64("paid_time"), "paid_time"),
    )
    r.finish()
    return quote


def encode_melt_quote(quote: MeltQuote) -> tuple[bytes, bytes]:
    w = FieldWriter()
    w.string(quote.unit)
    w.u64(quote.amount)
    w.string(quote.request)
    w.u64(quote.fee_reserve)
    w.u8(MELT_QUOTE_STATE_CODES[quote.state])
    w.u64(quote.expiry)
    w.optional(quote.payment_preimage, w.string)
    w.string(quote.request_lookup_id)
    w.optional(quote.msat_to_pay, w.u64)
    w.u64(quote.created_time)
    w.optional(quote.paid_time, w.u64)
    return bytes(quote.id), w.getvalue()


def decode_melt_request(raw_key: bytes, raw_value: bytes) -> MeltRequest:
    """Melt requests share their key with the melt quote they were made against."""
    quote_id = _fixed_key(MELT_REQUESTS_TABLE, raw_key, QUOTE_ID_LEN, "quote id")
    r = FieldReader(MELT_REQUESTS_TABLE, raw_value)
    request = MeltRequest(
        quote_id=quote_id,
        inputs=[r.take(PUBKEY_LEN, "input y") for _ in range(r.u16("input count"))],
        outputs=r.optional(
            lambda: [r.take(PUBKEY_LEN, "output") for _ in range(r.u16("output count"))],
            "outputs",
        ),
        method=r.string("method"),
        unit=r.string("unit"),
        payment_key=r.string("payment_key"),
    )
    r.finish()
    return request


def _write_pubkeys(w: FieldWriter, values):
    w.u16(len(values))
    for value in values:
        w.raw(value, PUBKEY_LEN)


def encode_melt_request(request: MeltRequest) -> tuple[bytes, bytes]:
    w = FieldWriter()
    _write_pubkeys(w, request.inputs)
    w.optional(request.outputs, lambda outputs: _write_pubkeys(w, outputs))
    w.string(request.method)
    w.string(request.unit)
    w.string(request.payment_key)
    return bytes(request.quote_id), w.getvalue()


# ═════════════════════════════════════════════════════════════
# Protected endpoints (auth store)
# ═════════════════════════════════════════════════════════════

def decode_protected_endpoint(raw_key: bytes, raw_value: bytes) -> ProtectedEndpoint:
    k = FieldReader(ENDPOINTS_TABLE, raw_key, part="key")
    method = k.tag(HTTP_METHOD_TAGS, "method")
    path_start = k.offset
    try:
        path = k.data[path_start:].decode("utf-8")
    except UnicodeDecodeError as e:
        k.fail(f"path is not valid UTF-8 ({e.reason})", path_start + e.start)
    if not path:
        k.fail("empty path", path_start)

    r = FieldReader(ENDPOINTS_TABLE, raw_value)
    auth = r.tag(AUTH_REQUIRED_TAGS, "auth")
    r.finish()
    return ProtectedEndpoint(method=method, path=path, auth=auth)


def encode_protected_endpoint(endpoint: ProtectedEndpoint) -> tuple[bytes, bytes]:
    key = _U8.pack(HTTP_METHOD_CODES[endpoint.method]) + endpoint.path.encode("utf-8")
    return key, _U8.pack(AUTH_REQUIRED_CODES[endpoint.auth])
