# =======================================================================================
# app/utils/hashing.py - Digest Helpers
# =======================================================================================
import hashlib
import hmac


def sha256_hex(value: str) -> str:
    """64-char lowercase hex SHA-256 of ``value`` (UTF-8)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_uid(uid: str) -> str:
    """RFID UIDs are stored and digested upper-case."""
    return uid.strip().upper()


def hash_uid(uid: str) -> str:
    return sha256_hex(normalize_uid(uid))


def digests_equal(a: str, b: str) -> bool:
    """Constant-time comparison of two hex digests."""
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("ascii"), b.encode("ascii"))
