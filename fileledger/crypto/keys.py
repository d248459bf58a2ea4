# fileledger/crypto/keys.py
from dataclasses import replace
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from fileledger.core.canon import signing_bytes
from fileledger.core.encoding import b64url_decode, b64url_encode
from fileledger.core.types import AuditEvent, Proof


class NotaryKeyPair:
    """
    Ed25519 key that attests every audit event the ledger emits.
    A verify-only instance (no private half) can check but not sign.
    """

    def __init__(self, public_key: Ed25519PublicKey, private_key: Optional[Ed25519PrivateKey] = None):
        self._public = public_key
        self._private = private_key

    @classmethod
    def generate(cls) -> "NotaryKeyPair":
        private = Ed25519PrivateKey.generate()
        return cls(private.public_key(), private)

    @classmethod
    def from_private_b64url(cls, value: str) -> "NotaryKeyPair":
        private = Ed25519PrivateKey.from_private_bytes(b64url_decode(value.strip()))
        return cls(private.public_key(), private)

    @classmethod
    def from_public_b64url(cls, value: str) -> "NotaryKeyPair":
        return cls(Ed25519PublicKey.from_public_bytes(b64url_decode(value.strip())))

    @classmethod
    def load(cls, path: str | Path) -> "NotaryKeyPair":
        """Read a private key written by save()."""
        return cls.from_private_b64url(Path(path).read_text(encoding="ascii"))

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.private_key_b64url() + "\n", encoding="ascii")
        path.chmod(0o600)
        return path

    @property
    def can_sign(self) -> bool:
        return self._private is not None

    def public_key_b64url(self) -> str:
        raw = self._public.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return b64url_encode(raw)

    def private_key_b64url(self) -> str:
        if self._private is None:
            raise ValueError("Verify-only key has no private half")
        raw = self._private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return b64url_encode(raw)

    def sign_bytes(self, data: bytes) -> bytes:
        if self._private is None:
            raise ValueError("Verify-only key cannot sign")
        return self._private.sign(data)

    def verify_bytes(self, signature: bytes, data: bytes) -> bool:
        try:
            self._public.verify(signature, data)
        except InvalidSignature:
            return False
        return True

    def sign_event(self, event: AuditEvent) -> AuditEvent:
        """
        Return a copy of the event carrying this key's proof. The proof is
        dated with the event's own timestamp, so a fixed clock yields
        byte-identical events.
        """
        if event.proof is not None:
            raise ValueError("Event is already signed")
        signature = self.sign_bytes(signing_bytes(event))
        proof = Proof(
            created=event.timestamp,
            verification_method=self.public_key_b64url(),
            proof_value=b64url_encode(signature),
        )
        return replace(event, proof=proof)
