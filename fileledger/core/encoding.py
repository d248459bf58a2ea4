# fileledger/core/encoding.py
import base64


def b64url_encode(data: bytes) -> str:
    """base64url without padding, as used for keys and signatures."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))
