# fileledger/core/types.py
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

# The all-zero identity; never a valid administrator or grantee.
NULL_IDENTITY = "0x" + "0" * 40


def is_null_identity(identity: Optional[str]) -> bool:
    if identity is None:
        return True
    stripped = identity.strip()
    return stripped == "" or stripped.lower() == NULL_IDENTITY


class EventKind(str, Enum):
    FILE_ACCESSED = "FileAccessed"
    SUB_FILE_ACCESSED = "SubFileAccessed"
    ACCESS_GRANTED = "AccessGranted"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


@dataclass(frozen=True)
class FileRecord:
    """Registry entry pointing at externally stored content."""
    file_id: int
    locator: str                    # opaque content fingerprint, e.g. an IPFS CID
    display_name: str
    present: bool = True


@dataclass(frozen=True)
class Proof:
    """Ed25519 signature made by the ledger's notary key."""
    type: str = "Ed25519Signature2020"
    created: str = ""
    verification_method: str = ""           # notary public key, base64url
    proof_purpose: str = "assertionMethod"
    proof_value: str = ""                   # base64url encoded Ed25519 sig


@dataclass(frozen=True)
class AuditEvent:
    """Single signed entry in the append-only audit chain."""
    sequence: int
    kind: EventKind
    file_id: Optional[int]          # None for ownership transfers
    detail: str                     # file name, sub-item name, grantee or new admin
    actor: str
    timestamp: str                  # ISO 8601 UTC with millis
    previous_admin: str = ""        # only set on OwnershipTransferred
    prev_hash: str = ""             # hex(sha256) or empty for first event
    proof: Optional[Proof] = None   # None until signed

    def payload(self) -> dict:
        """Everything the notary signs: the event minus its proof."""
        d = asdict(self)
        d["kind"] = self.kind.value
        d.pop("proof")
        return d

    def to_dict(self) -> dict:
        d = self.payload()
        d["proof"] = asdict(self.proof) if self.proof is not None else {}
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "AuditEvent":
        proof = d.get("proof") or None
        return cls(
            sequence=d["sequence"],
            kind=EventKind(d["kind"]),
            file_id=d["file_id"],
            detail=d["detail"],
            actor=d["actor"],
            timestamp=d["timestamp"],
            previous_admin=d.get("previous_admin", ""),
            prev_hash=d.get("prev_hash", ""),
            proof=Proof(**proof) if proof else None,
        )
