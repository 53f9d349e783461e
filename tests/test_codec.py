import pytest

from lmdb2sqlite import codec
from lmdb2sqlite.errors import DecodeError
from lmdb2sqlite.types import (
    AuthRequired, HttpMethod, MeltQuoteState, MintInfo, MintQuoteState,
    ProofDleq, ProofState, ProtectedEndpoint, QuoteTTL,
)
from tests.factories import (
    auth_proof_state_offset, keyset_id, make_auth_proof, make_blind_signature,
    make_keyset, make_melt_quote, make_melt_request, make_mint_info, make_mint_quote,
    make_proof, proof_state_offset, pubkey, scalar, with_byte,
)


# ── Round trips ──

@pytest.mark.parametrize("record, encode, decode", [
    (make_mint_info(), codec.encode_mint_info, codec.decode_mint_info),
    (MintInfo(), codec.encode_mint_info, codec.decode_mint_info),
    (QuoteTTL(mint_ttl=3600, melt_ttl=60), codec.encode_quote_ttl, codec.decode_quote_ttl),
    (make_keyset(1), codec.encode_keyset, codec.decode_keyset),
    (make_blind_signature(1, keyset_id(1), quote=bytes(16)), codec.encode_blind_signature, codec.decode_blind_signature),
    (make_proof(1, keyset_id(1), ProofState.SPENT), codec.encode_proof, codec.decode_proof),
    (make_auth_proof(1, keyset_id(1)), codec.encode_auth_proof, codec.decode_auth_proof),
    (make_mint_quote(1, MintQuoteState.ISSUED), codec.encode_mint_quote, codec.decode_mint_quote),
    (make_melt_quote(1, MeltQuoteState.PENDING), codec.encode_melt_quote, codec.decode_melt_quote),
    (make_melt_request(1), codec.encode_melt_request, codec.decode_melt_request),
    (
        ProtectedEndpoint(HttpMethod.GET, "/v1/auth/blind/keys", AuthRequired.BLIND),
        codec.encode_protected_endpoint,
        codec.decode_protected_endpoint,
    ),
])
def test_round_trip(record, encode, decode):
    key, value = encode(record)
    assert decode(key, value) == record


def test_proof_with_witness_and_dleq_round_trip():
    proof = make_proof(3, keyset_id(2))
    proof.witness = '{"signatures":["ab"]}'
    proof.dleq = ProofDleq(scalar(1), scalar(2), scalar(3))
    proof.quote_id = bytes(range(16))
    key, value = codec.encode_proof(proof)
    assert codec.decode_proof(key, value) == proof


def test_max_u64_amount_decodes_as_int():
    proof = make_proof(1, keyset_id(1), amount=2 ** 64 - 1)
    decoded = codec.decode_proof(*codec.encode_proof(proof))
    assert decoded.amount == 2 ** 64 - 1
    assert isinstance(decoded.amount, int)


def test_db_version():
    key, value = codec.encode_db_version(5)
    assert key == codec.DB_VERSION_KEY
    assert codec.decode_db_version(value) == 5


def test_db_version_not_a_number():
    with pytest.raises(DecodeError) as exc:
        codec.decode_db_version(b"five")
    assert exc.value.table == "config"


def test_format_quote_id():
    assert codec.format_quote_id(bytes(15) + b"\x01") == "00000000-0000-0000-0000-000000000001"


# ── Malformed input ──

def test_unknown_proof_state_tag():
    proof = make_proof(1, keyset_id(1))
    key, value = codec.encode_proof(proof)
    offset = proof_state_offset(proof)
    assert value[offset] == codec.PROOF_STATE_CODES[ProofState.UNSPENT]

    with pytest.raises(DecodeError) as exc:
        codec.decode_proof(key, with_byte(value, offset, 7))
    assert exc.value.table == "proofs"
    assert exc.value.offset == offset
    assert "tag 7" in exc.value.reason


def test_unknown_auth_proof_state_tag():
    proof = make_auth_proof(1, keyset_id(1))
    key, value = codec.encode_auth_proof(proof)
    offset = auth_proof_state_offset(proof)
    with pytest.raises(DecodeError) as exc:
        codec.decode_auth_proof(key, with_byte(value, offset, 9))
    assert exc.value.offset == offset


def test_truncated_value():
    key, value = codec.encode_proof(make_proof(1, keyset_id(1)))
    with pytest.raises(DecodeError) as exc:
        codec.decode_proof(key, value[:-1])
    assert "truncated" in exc.value.reason


def test_trailing_bytes():
    key, value = codec.encode_keyset(make_keyset(1))
    with pytest.raises(DecodeError) as exc:
        codec.decode_keyset(key, value + b"\x00")
    assert "trailing" in exc.value.reason
    assert exc.value.offset == len(value)


def test_invalid_boolean_byte():
    keyset = make_keyset(1, unit="sat")
    key, value = codec.encode_keyset(keyset)
    offset = 4 + len("sat")
    with pytest.raises(DecodeError) as exc:
        codec.decode_keyset(key, with_byte(value, offset, 2))
    assert exc.value.table == "keysets"
    assert exc.value.offset == offset


def test_invalid_presence_flag():
    _, value = codec.encode_mint_info(MintInfo())
    with pytest.raises(DecodeError) as exc:
        codec.decode_mint_info(codec.MINT_INFO_KEY, with_byte(value, 0, 5))
    assert "presence flag" in exc.value.reason


def test_invalid_utf8_string():
    keyset = make_keyset(1, unit="sat")
    key, value = codec.encode_keyset(keyset)
    with pytest.raises(DecodeError) as exc:
        codec.decode_keyset(key, with_byte(value, 4, 0xFF))
    assert "UTF-8" in exc.value.reason
    assert exc.value.offset == 4


def test_wrong_key_length():
    _, value = codec.encode_proof(make_proof(1, keyset_id(1)))
    with pytest.raises(DecodeError) as exc:
        codec.decode_proof(pubkey(1)[:-1], value)
    assert exc.value.offset == 0
    assert exc.value.reason.startswith("key:")


def test_singleton_under_wrong_key():
    _, value = codec.encode_quote_ttl(QuoteTTL(1, 2))
    with pytest.raises(DecodeError):
        codec.decode_quote_ttl(codec.MINT_INFO_KEY, value)


def test_endpoint_unknown_method_tag():
    key, value = codec.encode_protected_endpoint(
        ProtectedEndpoint(HttpMethod.POST, "/v1/swap", AuthRequired.CLEAR)
    )
    with pytest.raises(DecodeError) as exc:
        codec.decode_protected_endpoint(with_byte(key, 0, 4), value)
    assert exc.value.reason.startswith("key:")


def test_endpoint_empty_path():
    with pytest.raises(DecodeError):
        codec.decode_protected_endpoint(b"\x00", b"\x00")


def test_decode_error_message_names_table_and_offset():
    err = DecodeError("proofs", 12, "value: unknown proof state tag 7", record=3)
    assert "proofs" in str(err)
    assert "record 3" in str(err)
    assert "byte offset 12" in str(err)


# ── Melt requests ──

def test_melt_request_without_outputs():
    request = make_melt_request(2, inputs=3)
    request.outputs = None
    key, value = codec.encode_melt_request(request)
    assert key == request.quote_id
    assert codec.decode_melt_request(key, value) == request


def test_melt_request_truncated_input():
    key, value = codec.encode_melt_request(make_melt_request(1, inputs=1))
    with pytest.raises(DecodeError) as exc:
        codec.decode_melt_request(key, value[:2 + 10])
    assert exc.value.table == codec.MELT_REQUESTS_TABLE
    assert exc.value.offset == 2
    assert "input y" in exc.value.reason
