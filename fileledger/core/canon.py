# fileledger/core/canon.py
import hashlib
from typing import Any

import jcs

from fileledger.core.types import AuditEvent


def canonical_json(obj: Any) -> bytes:
    """
    Deterministic UTF-8 bytes per RFC 8785 (JSON Canonicalization Scheme).
    Used for both hashing and signing, so two processes always agree.
    """
    return jcs.canonicalize(obj)


def signing_bytes(event: AuditEvent) -> bytes:
    """Bytes the notary signs: the event without its proof."""
    return canonical_json(event.payload())


def event_hash(event: AuditEvent) -> str:
    """hex(sha256) over the full event, proof included. Next event's prev_hash."""
    return hashlib.sha256(canonical_json(event.to_dict())).hexdigest()
