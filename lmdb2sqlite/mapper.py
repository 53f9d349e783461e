"""
Maps decoded source records onto target rows.

Ids are carried through unchanged (keyset ids as lowercase hex, quote ids as
canonical UUID strings); binary material is written as-is and amounts stay
integers. A record that points at a keyset, or a melt request that points at
a melt quote, this mapper has not seen raises ``ReferentialIntegrityError``;
the caller decides whether that aborts.
"""

import json
from typing import NamedTuple

from lmdb2sqlite.codec import format_quote_id
from lmdb2sqlite.errors import ReferentialIntegrityError
from lmdb2sqlite.schema import (
    AUTH_REQUIRED_TOKENS, HTTP_METHOD_TOKENS, MELT_QUOTE_STATE_TOKENS,
    MINT_QUOTE_STATE_TOKENS, PROOF_STATE_TOKENS,
)
from lmdb2sqlite.types import (
    AuthProof, BlindSignature, Keyset, MeltQuote, MeltRequest, MintInfo,
    MintQuote, Proof, ProtectedEndpoint, QuoteTTL,
)


class Row(NamedTuple):
    table: str
    values: dict


def _hex(value):
    return None if value is None else value.hex()


def _quote_id(value):
    return None if value is None else format_quote_id(value)


def _hex_list(values):
    return None if values is None else json.dumps([v.hex() for v in values])


def mint_info_json(info: MintInfo) -> str:
    """Serialise the full mint info structure (stable key order)."""
    payload = {
        "name": info.name,
        "pubkey": _hex(info.pubkey),
        "version": None if info.version is None else {
            "name": info.version.name,
            "version": info.version.version,
        },
        "description": info.description,
        "description_long": info.description_long,
        "contact": [{"method": c.method, "info": c.info} for c in info.contact],
        "motd": info.motd,
        "icon_url": info.icon_url,
        "urls": list(info.urls),
        "tos_url": info.tos_url,
        "time": info.time,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class SchemaMapper:
    """Translates records of one database into rows, tracking mapped keysets and melt quotes."""

    def __init__(self):
        self.known_keysets: set[str] = set()
        self.known_melt_quotes: set[str] = set()

    def check_keyset_reference(self, table: str, keyset_id: bytes) -> str:
        keyset_hex = keyset_id.hex()
        if keyset_hex not in self.known_keysets:
            raise ReferentialIntegrityError(table, keyset_hex)
        return keyset_hex

    def map(self, record) -> list[Row]:
        handler = self._handlers.get(type(record))
        if handler is None:
            raise TypeError(f"No mapping for {type(record).__name__}")
        return handler(self, record)

    # ── Singletons ───────────────────────────────────────────

    def map_mint_info(self, info: MintInfo) -> list[Row]:
        return [Row("mint_info", {
            "id": 1,
            "name": info.name,
            "description": info.description,
            "info_json": mint_info_json(info),
        })]

    def map_quote_ttl(self, ttl: QuoteTTL) -> list[Row]:
        return [Row("quote_ttl", {"id": 1, "mint_ttl": ttl.mint_ttl, "melt_ttl": ttl.melt_ttl})]

    # ── Keysets and signatures ───────────────────────────────

    def map_keyset(self, keyset: Keyset) -> list[Row]:
        self.known_keysets.add(keyset.id_hex)
        return [Row("keyset", {
            "id": keyset.id_hex,
            "unit": keyset.unit,
            "active": 1 if keyset.active else 0,
            "valid_from": keyset.valid_from,
            "final_expiry": keyset.final_expiry,
            "derivation_path": keyset.derivation_path,
            "derivation_path_index": keyset.derivation_path_index,
            "max_order": keyset.max_order,
            "input_fee_ppk": keyset.input_fee_ppk,
        })]

    def map_blind_signature(self, signature: BlindSignature) -> list[Row]:
        keyset_id = self.check_keyset_reference("blind_signature", signature.keyset_id)
        dleq = signature.dleq
        return [Row("blind_signature", {
            "blinded_message": signature.blinded_message,
            "keyset_id": keyset_id,
            "amount": signature.amount,
            "c": signature.c,
            "dleq_e": None if dleq is None else dleq.e,
            "dleq_s": None if dleq is None else dleq.s,
            "quote_id": _quote_id(signature.quote_id),
            "created_time": signature.created_time,
        })]

    # ── Proofs ───────────────────────────────────────────────

    def map_proof(self, proof: Proof) -> list[Row]:
        keyset_id = self.check_keyset_reference("proof", proof.keyset_id)
        dleq = proof.dleq
        return [Row("proof", {
            "y": proof.y,
            "keyset_id": keyset_id,
            "amount": proof.amount,
            "secret": proof.secret,
            "c": proof.c,
            "witness": proof.witness,
            "dleq_e": None if dleq is None else dleq.e,
            "dleq_s": None if dleq is None else dleq.s,
            "dleq_r": None if dleq is None else dleq.r,
            "state": PROOF_STATE_TOKENS[proof.state],
            "quote_id": _quote_id(proof.quote_id),
            "created_time": proof.created_time,
        })]

    def map_auth_proof(self, proof: AuthProof) -> list[Row]:
        keyset_id = self.check_keyset_reference("proof", proof.keyset_id)
        dleq = proof.dleq
        return [Row("proof", {
            "y": proof.y,
            "keyset_id": keyset_id,
            "secret": proof.secret,
            "c": proof.c,
            "dleq_e": None if dleq is None else dleq.e,
            "dleq_s": None if dleq is None else dleq.s,
            "dleq_r": None if dleq is None else dleq.r,
            "state": PROOF_STATE_TOKENS[proof.state],
        })]

    # ── Quotes ───────────────────────────────────────────────

    def map_mint_quote(self, quote: MintQuote) -> list[Row]:
        return [Row("mint_quote", {
            "id": format_quote_id(quote.id),
            "amount": quote.amount,
            "unit": quote.unit,
            "request": quote.request,
            "state": MINT_QUOTE_STATE_TOKENS[quote.state],
            "expiry": quote.expiry,
            "request_lookup_id": quote.request_lookup_id,
            "pubkey": quote.pubkey,
            "created_time": quote.created_time,
            "payment_method": quote.payment_method,
        })]

    def map_melt_quote(self, quote: MeltQuote) -> list[Row]:
        quote_id = format_quote_id(quote.id)
        self.known_melt_quotes.add(quote_id)
        return [Row("melt_quote", {
            "id": quote_id,
            "unit": quote.unit,
            "amount": quote.amount,
            "request": quote.request,
            "fee_reserve": quote.fee_reserve,
            "state": MELT_QUOTE_STATE_TOKENS[quote.state],
            "expiry": quote.expiry,
            "payment_preimage": quote.payment_preimage,
            "request_lookup_id": quote.request_lookup_id,
            "msat_to_pay": quote.msat_to_pay,
            "created_time": quote.created_time,
            "paid_time": quote.paid_time,
        })]

    def map_melt_request(self, request: MeltRequest) -> list[Row]:
        quote_id = format_quote_id(request.quote_id)
        if quote_id not in self.known_melt_quotes:
            raise ReferentialIntegrityError("melt_request", quote_id, kind="melt quote")
        return [Row("melt_request", {
            "quote_id": quote_id,
            "inputs": _hex_list(request.inputs),
            "outputs": _hex_list(request.outputs),
            "method": request.method,
            "unit": request.unit,
            "payment_key": request.payment_key,
        })]

    def map_protected_endpoint(self, endpoint: ProtectedEndpoint) -> list[Row]:
        return [Row("protected_endpoint", {
            "method": HTTP_METHOD_TOKENS[endpoint.method],
            "path": endpoint.path,
            "auth": AUTH_REQUIRED_TOKENS[endpoint.auth],
        })]

    _handlers = {
        MintInfo: map_mint_info,
        QuoteTTL: map_quote_ttl,
        Keyset: map_keyset,
        BlindSignature: map_blind_signature,
        Proof: map_proof,
        AuthProof: map_auth_proof,
        MintQuote: map_mint_quote,
        MeltQuote: map_melt_quote,
        MeltRequest: map_melt_request,
        ProtectedEndpoint: map_protected_endpoint,
    }
