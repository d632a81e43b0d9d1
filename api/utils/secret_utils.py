"""
Activation code secrets.

Codes are drawn from an unambiguous alphabet, shown grouped as XXXX-XXXX,
and persisted only as a salted pbkdf2 hash.
"""
import re
import secrets

from passlib.context import CryptContext

from config.settings import get_settings

settings = get_settings()

_code_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_SEPARATORS = re.compile(r"[\s\-_]+")


def generate_activation_code(length: int = None, alphabet: str = None) -> str:
    """Random code in display form, e.g. 'K7QM-4PXA'"""
    length = length or settings.activation.code_length
    alphabet = alphabet or settings.activation.code_alphabet
    raw = "".join(secrets.choice(alphabet) for _ in range(length))
    return format_activation_code(raw)


def normalize_activation_code(code: str) -> str:
    """Uppercase and strip spaces/dashes so user input matches the stored hash"""
    return _SEPARATORS.sub("", code or "").upper()


def format_activation_code(code: str) -> str:
    raw = normalize_activation_code(code)
    return "-".join(raw[i:i + 4] for i in range(0, len(raw), 4))


def hash_activation_code(code: str) -> str:
    return _code_ctx.hash(normalize_activation_code(code))


def verify_activation_code(code: str, code_hash: str) -> bool:
    normalized = normalize_activation_code(code)
    if not normalized or not code_hash:
        return False
    try:
        return _code_ctx.verify(normalized, code_hash)
    except ValueError:
        return False
