# tests/test_core.py
import pytest

from fileledger.core.types import AuditEvent, EventKind, FileRecord, NULL_IDENTITY, is_null_identity
from fileledger.core.canon import canonical_json, event_hash, signing_bytes
from fileledger.core.errors import FileLedgerError, InvalidArgument, NotFound, Unauthorized


@pytest.fixture
def sample_event():
    return AuditEvent(
        sequence=0,
        kind=EventKind.FILE_ACCESSED,
        file_id=1,
        detail="report.pdf",
        actor="0xB0B",
        timestamp="2026-10-18T12:00:00.000+00:00",
    )


def test_event_immutable(sample_event):
    with pytest.raises(AttributeError):
        sample_event.sequence = 99


def test_file_record_immutable():
    record = FileRecord(1, "Qm123", "report.pdf")
    assert record.present is True
    with pytest.raises(AttributeError):
        record.locator = "Qm456"


def test_event_to_dict(sample_event):
    d = sample_event.to_dict()
    assert d["kind"] == "FileAccessed"
    assert d["prev_hash"] == ""
    assert d["previous_admin"] == ""
    assert d["proof"] == {}
    assert "proof" not in sample_event.payload()


def test_event_dict_roundtrip(sample_event):
    assert AuditEvent.from_dict(sample_event.to_dict()) == sample_event


def test_canonical_json_deterministic(sample_event):
    copy = AuditEvent(**sample_event.__dict__)
    assert canonical_json(sample_event.to_dict()) == canonical_json(copy.to_dict())
    assert b'"sequence":0' in signing_bytes(sample_event)


def test_canonical_json_sorting():
    canon = canonical_json({"z": 1, "a": "hello", "nested": {"b": 2, "a": 1}}).decode("utf-8")
    assert canon == '{"a":"hello","nested":{"a":1,"b":2},"z":1}'


def test_event_hash_covers_every_field(sample_event):
    from dataclasses import replace

    base = event_hash(sample_event)
    assert len(base) == 64
    assert event_hash(replace(sample_event, actor="0xCA201")) != base
    assert event_hash(replace(sample_event, timestamp="2026-10-18T12:00:01.000+00:00")) != base
    assert event_hash(replace(sample_event, kind=EventKind.SUB_FILE_ACCESSED)) != base


@pytest.mark.parametrize("identity", [None, "", "  ", NULL_IDENTITY, NULL_IDENTITY.upper()])
def test_null_identities(identity):
    assert is_null_identity(identity)


def test_real_identity_not_null():
    assert not is_null_identity("0xB0B")


def test_error_hierarchy():
    assert issubclass(Unauthorized, PermissionError)
    assert issubclass(NotFound, LookupError)
    assert issubclass(InvalidArgument, ValueError)
    for cls in (Unauthorized, NotFound, InvalidArgument):
        assert issubclass(cls, FileLedgerError)


def test_error_messages():
    assert str(NotFound(7)) == "File 7 does not exist"
    err = Unauthorized("0xB0B", "access", 7)
    assert err.caller == "0xB0B"
    assert err.file_id == 7
    assert "0xB0B" in str(err) and "file 7" in str(err)
    assert "file" not in str(Unauthorized("0xB0B", "transfer ownership"))
