# fileledger/core/errors.py
"""
Errors raised by ledger operations.

Each one aborts the operation it came from with nothing written: no record,
no grant, no audit event.
"""


class FileLedgerError(Exception):
    """Base class for every refused ledger operation."""


class Unauthorized(FileLedgerError, PermissionError):
    """Caller is not the administrator, or is not granted on the file."""

    def __init__(self, caller: str, action: str, file_id: int | None = None):
        self.caller = caller
        self.action = action
        self.file_id = file_id
        target = f" on file {file_id}" if file_id is not None else ""
        super().__init__(f"'{caller}' is not authorized to {action}{target}")


class NotFound(FileLedgerError, LookupError):
    """No present record exists for the file id."""

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"File {file_id} does not exist")


class InvalidArgument(FileLedgerError, ValueError):
    """Structurally invalid input, e.g. the null identity."""
