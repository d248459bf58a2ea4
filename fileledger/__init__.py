# fileledger/__init__.py
"""
Fileledger: access-controlled file registry with a tamper-evident audit trail.
Every retrieval, sub-item view, grant and ownership change is hash-chained
and signed by the ledger's notary key.
"""

__version__ = "0.1.0-dev"

from fileledger.core.errors import FileLedgerError, InvalidArgument, NotFound, Unauthorized
from fileledger.core.types import AuditEvent, EventKind, FileRecord, NULL_IDENTITY
from fileledger.crypto.keys import NotaryKeyPair
from fileledger.registry.ledger import FileLedger
from fileledger.integration.caller import CallerSession
from fileledger.verify.verifier import AuditVerifier, VerificationResult

__all__ = [
    "AuditEvent",
    "AuditVerifier",
    "CallerSession",
    "EventKind",
    "FileLedger",
    "FileLedgerError",
    "FileRecord",
    "InvalidArgument",
    "NULL_IDENTITY",
    "NotFound",
    "NotaryKeyPair",
    "Unauthorized",
    "VerificationResult",
]
