import hmac
import re
import secrets
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher(time_cost=3, memory_cost=65536, parallelism=4)

TOKEN_BYTES = 32
_TOKEN_RE = re.compile(r"[0-9a-f]{%d}" % (TOKEN_BYTES * 2))


def hash_api_key(api_key: str) -> str:
    return ph.hash(api_key)


def verify_api_key(stored_hash: str, api_key: str) -> bool:
    try:
        return ph.verify(stored_hash, api_key)
    except (VerificationError, InvalidHashError):
        return False


def generate_token() -> str:
    """256 bits from the OS CSPRNG, rendered as 64 lowercase hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def is_well_formed_token(token: str) -> bool:
    return _TOKEN_RE.fullmatch(token) is not None


def tokens_match(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("ascii"), supplied.encode("ascii"))
