# fileledger/integration/caller.py
from typing import List

from fileledger.core.types import AuditEvent, FileRecord
from fileledger.registry.ledger import FileLedger
from fileledger.verify.verifier import AuditVerifier


class CallerSession:
    """
    Binds one pre-authenticated identity to a ledger, so a request handler
    can call ledger operations without threading the caller through.
    The identity is trusted as given; authenticating it is the host's job.
    """

    def __init__(self, ledger: FileLedger, identity: str):
        if not identity or not identity.strip():
            raise ValueError("Caller identity is required")
        self.ledger = ledger
        self.identity = identity

    @property
    def is_administrator(self) -> bool:
        return self.ledger.administrator == self.identity

    def add_file(self, file_id: int, locator: str, display_name: str) -> FileRecord:
        return self.ledger.add_file(self.identity, file_id, locator, display_name)

    def authorize_user(self, file_id: int, identity: str) -> AuditEvent:
        return self.ledger.authorize_user(self.identity, file_id, identity)

    def access_file(self, file_id: int) -> str:
        return self.ledger.access_file(self.identity, file_id)

    def log_sub_file(self, file_id: int, sub_name: str) -> AuditEvent:
        return self.ledger.log_sub_file(self.identity, file_id, sub_name)

    def transfer_ownership(self, new_identity: str) -> AuditEvent:
        return self.ledger.transfer_ownership(self.identity, new_identity)

    def my_events(self) -> List[AuditEvent]:
        return [e for e in self.ledger.events() if e.actor == self.identity]

    def create_verifier(self) -> AuditVerifier:
        return AuditVerifier(trusted_keys=[self.ledger.notary.public_key_b64url()])
