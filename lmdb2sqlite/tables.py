"""
Per-table migration steps, in dependency order.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from lmdb2sqlite import codec
from lmdb2sqlite.source import SourceStore


@dataclass
class TableStep:
    target: str
    source: str
    decode: Callable
    singleton_key: Optional[bytes] = None

    def pairs(self, store: SourceStore):
        """Raw (key, value) pairs feeding this step."""
        if self.singleton_key is None:
            return store.scan(self.source)
        value = store.get_config(self.singleton_key)
        return [] if value is None else [(self.singleton_key, value)]

    @property
    def label(self) -> str:
        if self.singleton_key is None:
            return self.source
        return f"{self.source}/{self.singleton_key.decode('ascii')}"


MAIN_STEPS = [
    TableStep("mint_info", codec.CONFIG_TABLE, codec.decode_mint_info, codec.MINT_INFO_KEY),
    TableStep("quote_ttl", codec.CONFIG_TABLE, codec.decode_quote_ttl, codec.QUOTE_TTL_KEY),
    TableStep("keyset", codec.KEYSETS_TABLE, codec.decode_keyset),
    TableStep("blind_signature", codec.BLIND_SIGNATURES_TABLE, codec.decode_blind_signature),
    TableStep("proof", codec.PROOFS_TABLE, codec.decode_proof),
    TableStep("mint_quote", codec.MINT_QUOTES_TABLE, codec.decode_mint_quote),
    TableStep("melt_quote", codec.MELT_QUOTES_TABLE, codec.decode_melt_quote),
    TableStep("melt_request", codec.MELT_REQUESTS_TABLE, codec.decode_melt_request),
]

AUTH_STEPS = [
    TableStep("keyset", codec.KEYSETS_TABLE, codec.decode_keyset),
    TableStep("blind_signature", codec.BLIND_SIGNATURES_TABLE, codec.decode_blind_signature),
    TableStep("proof", codec.PROOFS_TABLE, codec.decode_auth_proof),
    TableStep("protected_endpoint", codec.ENDPOINTS_TABLE, codec.decode_protected_endpoint),
]
