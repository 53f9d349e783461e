"""
Target SQLite schema (target schema version 1) and the fixed state tokens.

Each table is declared once; the DDL and the expected column layout used by
the schema check are both derived from these declarations.
"""

from dataclasses import dataclass, field

from lmdb2sqlite.types import (
    AuthRequired, HttpMethod, MeltQuoteState, MintQuoteState, ProofState,
)

# ═════════════════════════════════════════════════════════════
# State tokens stored in the target
# ═════════════════════════════════════════════════════════════

PROOF_STATE_TOKENS = {
    ProofState.UNSPENT: "unspent",
    ProofState.PENDING: "pending",
    ProofState.SPENT: "spent",
}
MINT_QUOTE_STATE_TOKENS = {
    MintQuoteState.UNPAID: "unpaid",
    MintQuoteState.PAID: "paid",
    MintQuoteState.ISSUED: "issued",
}
MELT_QUOTE_STATE_TOKENS = {
    MeltQuoteState.UNPAID: "unpaid",
    MeltQuoteState.PENDING: "pending",
    MeltQuoteState.PAID: "paid",
}
HTTP_METHOD_TOKENS = {
    HttpMethod.GET: "GET",
    HttpMethod.POST: "POST",
}
AUTH_REQUIRED_TOKENS = {
    AuthRequired.CLEAR: "clear",
    AuthRequired.BLIND: "blind",
}


def _check_in(column: str, tokens: dict) -> str:
    values = ", ".join(f"'{t}'" for t in tokens.values())
    return f"CHECK ({column} IN ({values}))"


# ═════════════════════════════════════════════════════════════
# Table declarations
# ═════════════════════════════════════════════════════════════

@dataclass
class TableDef:
    name: str
    columns: list[tuple[str, str]]
    constraints: list[str] = field(default_factory=list)
    indexes: list[tuple[str, str]] = field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [name for name, _ in self.columns]

    @property
    def primary_key(self) -> list[str]:
        for constraint in self.constraints:
            if constraint.startswith("PRIMARY KEY"):
                inner = constraint[constraint.index("(") + 1:constraint.index(")")]
                return [c.strip() for c in inner.split(",")]
        return [name for name, decl in self.columns if "PRIMARY KEY" in decl]

    def expected_columns(self) -> dict[str, str]:
        """Column name -> declared SQLite type."""
        return {name: decl.split()[0] for name, decl in self.columns}

    def ddl(self) -> list[str]:
        body = [f"{name} {decl}" for name, decl in self.columns] + self.constraints
        statements = [f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(body) + "\n)"]
        for index_name, cols in self.indexes:
            statements.append(f"CREATE INDEX IF NOT EXISTS {index_name} ON {self.name} ({cols})")
        return statements


KEYSET = TableDef(
    "keyset",
    [
        ("id", "TEXT PRIMARY KEY"),
        ("unit", "TEXT NOT NULL"),
        ("active", "INTEGER NOT NULL CHECK (active IN (0, 1))"),
        ("valid_from", "INTEGER NOT NULL"),
        ("final_expiry", "INTEGER"),
        ("derivation_path", "TEXT NOT NULL"),
        ("derivation_path_index", "INTEGER"),
        ("max_order", "INTEGER NOT NULL"),
        ("input_fee_ppk", "INTEGER NOT NULL"),
    ],
    indexes=[("keyset_unit_index", "unit"), ("keyset_active_index", "active")],
)

BLIND_SIGNATURE = TableDef(
    "blind_signature",
    [
        ("blinded_message", "BLOB PRIMARY KEY"),
        ("keyset_id", "TEXT NOT NULL"),
        ("amount", "INTEGER NOT NULL"),
        ("c", "BLOB NOT NULL"),
        ("dleq_e", "BLOB"),
        ("dleq_s", "BLOB"),
        ("quote_id", "TEXT"),
        ("created_time", "INTEGER NOT NULL"),
    ],
    constraints=["FOREIGN KEY (keyset_id) REFERENCES keyset(id)"],
    indexes=[
        ("blind_signature_keyset_id_index", "keyset_id"),
        ("blind_signature_quote_id_index", "quote_id"),
    ],
)

MINT_INFO = TableDef(
    "mint_info",
    [
        ("id", "INTEGER PRIMARY KEY CHECK (id = 1)"),
        ("name", "TEXT"),
        ("description", "TEXT"),
        ("info_json", "TEXT NOT NULL"),
    ],
)

QUOTE_TTL = TableDef(
    "quote_ttl",
    [
        ("id", "INTEGER PRIMARY KEY CHECK (id = 1)"),
        ("mint_ttl", "INTEGER NOT NULL"),
        ("melt_ttl", "INTEGER NOT NULL"),
    ],
)

PROOF = TableDef(
    "proof",
    [
        ("y", "BLOB PRIMARY KEY"),
        ("keyset_id", "TEXT NOT NULL"),
        ("amount", "INTEGER NOT NULL"),
        ("secret", "TEXT NOT NULL UNIQUE"),
        ("c", "BLOB NOT NULL"),
        ("witness", "TEXT"),
        ("dleq_e", "BLOB"),
        ("dleq_s", "BLOB"),
        ("dleq_r", "BLOB"),
        ("state", "TEXT NOT NULL " + _check_in("state", PROOF_STATE_TOKENS)),
        ("quote_id", "TEXT"),
        ("created_time", "INTEGER NOT NULL"),
    ],
    constraints=["FOREIGN KEY (keyset_id) REFERENCES keyset(id)"],
    indexes=[("proof_keyset_id_index", "keyset_id"), ("proof_state_index", "state")],
)

MINT_QUOTE = TableDef(
    "mint_quote",
    [
        ("id", "TEXT PRIMARY KEY"),
        ("amount", "INTEGER NOT NULL"),
        ("unit", "TEXT NOT NULL"),
        ("request", "TEXT NOT NULL"),
        ("state", "TEXT NOT NULL " + _check_in("state", MINT_QUOTE_STATE_TOKENS)),
        ("expiry", "INTEGER NOT NULL"),
        ("request_lookup_id", "TEXT NOT NULL"),
        ("pubkey", "BLOB"),
        ("created_time", "INTEGER NOT NULL"),
        ("payment_method", "TEXT NOT NULL"),
    ],
    indexes=[
        ("mint_quote_state_index", "state"),
        ("mint_quote_request_lookup_id_index", "request_lookup_id"),
    ],
)

MELT_QUOTE = TableDef(
    "melt_quote",
    [
        ("id", "TEXT PRIMARY KEY"),
        ("unit", "TEXT NOT NULL"),
        ("amount", "INTEGER NOT NULL"),
        ("request", "TEXT NOT NULL"),
        ("fee_reserve", "INTEGER NOT NULL"),
        ("state", "TEXT NOT NULL " + _check_in("state", MELT_QUOTE_STATE_TOKENS)),
        ("expiry", "INTEGER NOT NULL"),
        ("payment_preimage", "TEXT"),
        ("request_lookup_id", "TEXT NOT NULL"),
        ("msat_to_pay", "INTEGER"),
        ("created_time", "INTEGER NOT NULL"),
        ("paid_time", "INTEGER"),
    ],
    indexes=[
        ("melt_quote_state_index", "state"),
        ("melt_quote_request_lookup_id_index", "request_lookup_id"),
    ],
)

MELT_REQUEST = TableDef(
    "melt_request",
    [
        ("quote_id", "TEXT PRIMARY KEY"),
        ("inputs", "TEXT NOT NULL"),
        ("outputs", "TEXT"),
        ("method", "TEXT NOT NULL"),
        ("unit", "TEXT NOT NULL"),
        ("payment_key", "TEXT NOT NULL"),
    ],
    constraints=["FOREIGN KEY (quote_id) REFERENCES melt_quote(id)"],
    indexes=[("melt_request_payment_key_index", "payment_key")],
)

AUTH_PROOF = TableDef(
    "proof",
    [
        ("y", "BLOB PRIMARY KEY"),
        ("keyset_id", "TEXT NOT NULL"),
        ("secret", "TEXT NOT NULL UNIQUE"),
        ("c", "BLOB NOT NULL"),
        ("dleq_e", "BLOB"),
        ("dleq_s", "BLOB"),
        ("dleq_r", "BLOB"),
        ("state", "TEXT NOT NULL " + _check_in("state", PROOF_STATE_TOKENS)),
    ],
    constraints=["FOREIGN KEY (keyset_id) REFERENCES keyset(id)"],
    indexes=[("proof_keyset_id_index", "keyset_id"), ("proof_state_index", "state")],
)

PROTECTED_ENDPOINT = TableDef(
    "protected_endpoint",
    [
        ("method", "TEXT NOT NULL " + _check_in("method", HTTP_METHOD_TOKENS)),
        ("path", "TEXT NOT NULL"),
        ("auth", "TEXT NOT NULL " + _check_in("auth", AUTH_REQUIRED_TOKENS)),
    ],
    constraints=["PRIMARY KEY (method, path)"],
)

# Dependency order: keysets and melt quotes come before anything that references them
MAIN_SCHEMA = [MINT_INFO, QUOTE_TTL, KEYSET, BLIND_SIGNATURE, PROOF, MINT_QUOTE, MELT_QUOTE, MELT_REQUEST]
AUTH_SCHEMA = [KEYSET, BLIND_SIGNATURE, AUTH_PROOF, PROTECTED_ENDPOINT]


def schema_statements(tables: list[TableDef]) -> list[str]:
    statements = []
    for table in tables:
        statements.extend(table.ddl())
    return statements
