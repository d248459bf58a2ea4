# fileledger/registry/ledger.py
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from fileledger.core.errors import InvalidArgument, NotFound, Unauthorized
from fileledger.core.types import AuditEvent, EventKind, FileRecord, is_null_identity
from fileledger.crypto.keys import NotaryKeyPair
from fileledger.logging import get_logger
from fileledger.storage import StorageBackend, create_storage

logger = get_logger(__name__)

Clock = Callable[[], str]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class FileLedger:
    """
    Access-controlled file registry with a signed, hash-chained audit log.

    Every public operation takes the pre-authenticated caller identity and
    runs in one storage transaction: checks first, then the state change and
    its audit event together, or nothing at all.
    """

    def __init__(
        self,
        storage: Union[StorageBackend, str, None],
        notary: NotaryKeyPair,
        deployer: Optional[str] = None,
        clock: Clock = utc_now,
    ):
        if isinstance(storage, str) or storage is None:
            storage = create_storage(storage or "memory:")
        if not notary.can_sign:
            raise ValueError("Ledger notary key must include the private half")

        self.storage = storage
        self.notary = notary
        self.clock = clock

        with self.storage.transaction():
            current = self.storage.get_administrator()
            if current is None:
                if is_null_identity(deployer):
                    raise InvalidArgument("A new ledger needs a non-null deployer identity")
                self.storage.set_administrator(deployer)
                logger.info("ledger_bootstrapped", administrator=deployer)
            elif deployer is not None and deployer != current:
                logger.warning("deployer_ignored", deployer=deployer, administrator=current)
            self.storage.add_notary_key(notary.public_key_b64url())

    @property
    def administrator(self) -> str:
        admin = self.storage.get_administrator()
        if admin is None:
            raise RuntimeError("Ledger has no administrator; storage was not bootstrapped")
        return admin

    def _require_admin(self, caller: str, action: str, file_id: Optional[int] = None) -> str:
        admin = self.administrator
        if caller != admin:
            logger.warning("access_denied", caller=caller, action=action, file_id=file_id)
            raise Unauthorized(caller, action, file_id)
        return admin

    def _require_file(self, file_id: int) -> FileRecord:
        record = self.storage.get_file(file_id)
        if record is None or not record.present:
            logger.warning("file_not_found", file_id=file_id)
            raise NotFound(file_id)
        return record

    def _require_reader(self, caller: str, file_id: int, action: str) -> FileRecord:
        # existence is checked before authorization
        record = self._require_file(file_id)
        if not self.storage.is_granted(file_id, caller):
            logger.warning("access_denied", caller=caller, action=action, file_id=file_id)
            raise Unauthorized(caller, action, file_id)
        return record

    def _emit(
        self,
        kind: EventKind,
        file_id: Optional[int],
        detail: str,
        actor: str,
        previous_admin: str = "",
    ) -> AuditEvent:
        """Chain, sign and persist one event. Caller holds the transaction."""
        unsigned = AuditEvent(
            sequence=self.storage.event_count(),
            kind=kind,
            file_id=file_id,
            detail=detail,
            actor=actor,
            timestamp=self.clock(),
            previous_admin=previous_admin,
            prev_hash=self.storage.last_event_hash() or "",
        )
        signed = self.notary.sign_event(unsigned)
        self.storage.append_event(signed)
        logger.info(
            "audit_event",
            kind=kind.value,
            sequence=signed.sequence,
            file_id=file_id,
            actor=actor,
        )
        return signed

    # ── registry

    def add_file(self, caller: str, file_id: int, locator: str, display_name: str) -> FileRecord:
        """
        Register (or silently overwrite) a file record. Administrator only.
        The administrator is granted read access to the file.
        """
        with self.storage.transaction():
            admin = self._require_admin(caller, "add files", file_id)
            existing = self.storage.get_file(file_id)
            if existing is not None and existing.present:
                logger.warning(
                    "file_overwritten",
                    file_id=file_id,
                    old_locator=existing.locator,
                    new_locator=locator,
                )
            record = FileRecord(file_id=file_id, locator=locator, display_name=display_name, present=True)
            self.storage.put_file(record)
            self.storage.grant(file_id, admin)
        logger.info("file_added", file_id=file_id, display_name=display_name)
        return record

    # ── acl

    def authorize_user(self, caller: str, file_id: int, identity: str) -> AuditEvent:
        """Grant identity read access to file_id. Administrator only; grants are permanent."""
        with self.storage.transaction():
            self._require_admin(caller, "grant access", file_id)
            self._require_file(file_id)
            if is_null_identity(identity):
                raise InvalidArgument("Cannot grant access to the null identity")
            self.storage.grant(file_id, identity)
            return self._emit(EventKind.ACCESS_GRANTED, file_id, identity, caller)

    def is_authorized(self, file_id: int, identity: str) -> bool:
        return self.storage.is_granted(file_id, identity)

    # ── access paths

    def access_file(self, caller: str, file_id: int) -> str:
        """Log the access and hand back the file's locator."""
        with self.storage.transaction():
            record = self._require_reader(caller, file_id, "access")
            self._emit(EventKind.FILE_ACCESSED, file_id, record.display_name, caller)
            return record.locator

    def log_sub_file(self, caller: str, file_id: int, sub_name: str) -> AuditEvent:
        """Log access to an item inside a container file. Independent of access_file."""
        with self.storage.transaction():
            self._require_reader(caller, file_id, "log sub-file access")
            return self._emit(EventKind.SUB_FILE_ACCESSED, file_id, sub_name, caller)

    # ── administration

    def transfer_ownership(self, caller: str, new_identity: str) -> AuditEvent:
        """
        Hand administration to new_identity in one step. There is no accept
        phase: a mistyped identity loses control of the ledger for good.
        Existing grants are left exactly as they are.
        """
        with self.storage.transaction():
            old = self._require_admin(caller, "transfer ownership")
            if is_null_identity(new_identity):
                raise InvalidArgument("New administrator cannot be the null identity")
            event = self._emit(
                EventKind.OWNERSHIP_TRANSFERRED, None, new_identity, caller, previous_admin=old
            )
            self.storage.set_administrator(new_identity)
        logger.info("ownership_transferred", previous=old, new=new_identity)
        return event

    # ── public log surface

    def events(self) -> List[AuditEvent]:
        return self.storage.load_events()

    def events_for_file(self, file_id: int) -> List[AuditEvent]:
        return self.storage.load_events(file_id)

    def event_count(self) -> int:
        return self.storage.event_count()

    def last_hash(self) -> Optional[str]:
        return self.storage.last_event_hash()

    def close(self) -> None:
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
