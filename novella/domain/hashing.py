from __future__ import annotations

import hashlib
import secrets
import string


_ID_ALPHABET = string.ascii_lowercase + string.digits


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def manuscript_hash(text: str) -> str:
    return sha256_text(text)


def generate_id(length: int = 9) -> str:
    """Short random id used for stories, chapters, characters and world items."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))
