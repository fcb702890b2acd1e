"""Nostr-style content-addressed events: ids, oracle signatures, outcome assertions.

Ids follow NIP-01: ``sha256`` over the compact JSON array
``[0, pubkey, created_at, kind, tags, content]``. Signatures are BIP-340 Schnorr
over ``SHA256(id)`` where the id is taken as its hex text, which is the exact
32-byte message the outcome leaf pushes for OP_CHECKSIGFROMSTACK.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

from bitcoinutils.schnorr import pubkey_gen, schnorr_sign, schnorr_verify
from pydantic import BaseModel, ConfigDict, Field

from markstr.errors import InvalidSignature

if TYPE_CHECKING:
    from markstr.models.market import PredictionOutcome

MARKET_EVENT_KIND = 42
# bitcoin core passes 32 zero bytes as aux randomness; keeps signatures reproducible
_AUX_RAND = bytes(32)


def event_id(pubkey: str, created_at: int, kind: int, tags: list[list[str]], content: str) -> str:
    """NIP-01 event id (lowercase hex)."""
    serialized = json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def signing_digest(identifier: str) -> bytes:
    """32-byte message an oracle signs for an event or outcome id."""
    return hashlib.sha256(identifier.encode("utf-8")).digest()


def xonly_pubkey(secret_key: bytes) -> str:
    """x-only public key (hex) for a 32-byte secret key."""
    return pubkey_gen(secret_key).hex()


def sign_digest(secret_key: bytes, digest: bytes) -> str:
    return schnorr_sign(digest, secret_key, _AUX_RAND).hex()


def verify_digest(pubkey: str, digest: bytes, signature: str) -> bool:
    """Verify a BIP-340 signature; raise InvalidSignature when the bytes are malformed."""
    try:
        sig = bytes.fromhex(signature)
        key = bytes.fromhex(pubkey)
    except ValueError as e:
        raise InvalidSignature(f"Signature or key is not hex: {e}") from e
    if len(sig) != 64:
        raise InvalidSignature(f"Invalid signature length: expected 64 bytes, got {len(sig)}")
    if len(key) != 32:
        raise InvalidSignature(f"Invalid public key length: expected 32 bytes, got {len(key)}")
    return schnorr_verify(digest, key, sig)


class OracleEvent(BaseModel):
    """A signed (or unsigned) event as carried by the transport layer."""

    model_config = ConfigDict(frozen=True)

    id: str
    pubkey: str
    created_at: int = Field(..., ge=0)
    kind: int = MARKET_EVENT_KIND
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str | None = None

    def computed_id(self) -> str:
        return event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def tag(self, name: str) -> list[str] | None:
        """First tag whose name matches, without the name itself."""
        for t in self.tags:
            if t and t[0] == name:
                return t[1:]
        return None

    @property
    def character(self) -> str | None:
        values = self.tag("outcome")
        if not values:
            return None
        return values[0].upper()

    def verify(self) -> bool:
        """True if the id matches the content and the signature verifies under ``pubkey``."""
        if self.sig is None:
            raise InvalidSignature(f"Event {self.id} is unsigned")
        if self.computed_id() != self.id:
            return False
        return verify_digest(self.pubkey, signing_digest(self.id), self.sig)


def sign_event(
    secret_key: bytes,
    created_at: int,
    tags: list[list[str]],
    content: str,
    kind: int = MARKET_EVENT_KIND,
) -> OracleEvent:
    pubkey = xonly_pubkey(secret_key)
    eid = event_id(pubkey, created_at, kind, tags, content)
    return OracleEvent(
        id=eid,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tags,
        content=content,
        sig=sign_digest(secret_key, signing_digest(eid)),
    )


def sign_outcome(secret_key: bytes, outcome: PredictionOutcome) -> OracleEvent:
    """Oracle attestation for an outcome. Its id equals ``outcome.nostr_id`` when the key matches."""
    return sign_event(
        secret_key,
        created_at=outcome.timestamp,
        tags=[["outcome", outcome.character]],
        content=outcome.outcome,
    )
