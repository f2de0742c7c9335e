import secrets

from tenderflow.utils.hashing import sha256_text


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so an unsalted digest is enough and stays indexable.
    return sha256_text(token)


def tokens_match(expected: str, presented: str) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
