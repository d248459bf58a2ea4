# fileledger/verify/verifier.py
from typing import Iterable, List, Optional
from dataclasses import dataclass, field

from fileledger.core.types import AuditEvent, EventKind
from fileledger.core.canon import event_hash, signing_bytes
from fileledger.core.encoding import b64url_decode
from fileledger.crypto.keys import NotaryKeyPair
from fileledger.storage import StorageBackend


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # "sequence", "signature", "hash_chain", "ownership", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Audit log is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class AuditVerifier:
    """
    Offline verifier for the audit log. Needs nothing but the events and the
    notary public key(s); registry and ACL state are not consulted.
    """

    def __init__(self, trusted_keys: Iterable[str]):
        """trusted_keys: base64url notary public keys accepted as signers."""
        self.trusted_keys = {k.strip() for k in trusted_keys if k and k.strip()}
        if not self.trusted_keys:
            raise ValueError("At least one trusted notary key is required")

    def verify(
        self,
        chain: List[AuditEvent],
        expected_head: Optional[str] = None,
        expected_count: Optional[int] = None,
    ) -> VerificationResult:
        """
        Verify a loaded chain. A hash chain alone cannot notice its newest
        events being dropped; pass expected_head (the last_hash recorded
        outside the database) and/or expected_count to anchor the tail.
        """
        result = VerificationResult(True)

        # 0. Tail anchor
        if expected_count is not None and len(chain) != expected_count:
            result.fail(len(chain), f"Expected {expected_count} events, found {len(chain)}", "truncation")
        if expected_head is not None:
            head = event_hash(chain[-1]) if chain else ""
            if head != expected_head:
                result.fail(len(chain) - 1, "Last event hash does not match the recorded head", "truncation")

        if not chain:
            result.message = "Empty log is valid" if result.is_valid else self._summary(result)
            return result

        # 1. Sequence contiguity & presence of proofs
        for i, event in enumerate(chain):
            if event.sequence != i:
                result.fail(i, f"Sequence mismatch: expected {i}, got {event.sequence}", "sequence")
            if event.proof is None:
                result.fail(i, "Missing proof/signature", "signature")

        if any(f.category in ("sequence", "signature") for f in result.failures):
            result.message = self._summary(result)
            return result

        # 2. Hash chain
        if chain[0].prev_hash != "":
            result.fail(0, "First event must not reference a predecessor", "hash_chain")
        for i in range(1, len(chain)):
            if chain[i].prev_hash != event_hash(chain[i - 1]):
                result.fail(i, "prev_hash does not match previous event hash", "hash_chain")

        # 3. Signatures
        for i, event in enumerate(chain):
            key_b64 = event.proof.verification_method
            if key_b64 not in self.trusted_keys:
                result.fail(i, "Signed by an untrusted notary key", "signature")
                continue
            try:
                notary = NotaryKeyPair.from_public_b64url(key_b64)
                signature = b64url_decode(event.proof.proof_value)
            except ValueError as e:
                result.fail(i, f"Malformed proof: {e}", "signature")
                continue
            if not notary.verify_bytes(signature, signing_bytes(event)):
                result.fail(i, "Invalid signature", "signature")

        # 4. Administration handovers must link up
        admin: Optional[str] = None
        for i, event in enumerate(chain):
            if event.kind is not EventKind.OWNERSHIP_TRANSFERRED:
                continue
            if event.actor != event.previous_admin:
                result.fail(i, "Transfer not made by the outgoing administrator", "ownership")
            if admin is not None and event.previous_admin != admin:
                result.fail(i, f"Transfer from '{event.previous_admin}' but administrator was '{admin}'", "ownership")
            admin = event.detail

        result.message = self._summary(result)
        return result

    def verify_from_storage(
        self,
        storage: StorageBackend,
        expected_head: Optional[str] = None,
        expected_count: Optional[int] = None,
    ) -> VerificationResult:
        """
        Load the full log from storage and verify it, including that each
        row's stored hash still matches its contents.
        """
        try:
            chain = storage.load_events()
            stored = storage.stored_hashes()
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load audit log from storage: {e}",
                [VerificationFailure(-1, str(e), "storage")],
            )

        result = self.verify(chain, expected_head=expected_head, expected_count=expected_count)
        for i, event in enumerate(chain):
            if stored.get(event.sequence) != event_hash(event):
                result.fail(i, "Stored hash does not match event contents", "storage")
        result.message = self._summary(result)
        return result

    @staticmethod
    def _summary(result: VerificationResult) -> str:
        return "Valid log" if result.is_valid else f"Failed with {len(result.failures)} issues"
