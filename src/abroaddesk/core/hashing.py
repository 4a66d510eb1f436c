from __future__ import annotations

import hashlib
import hmac


def compute_bytes_digest(data: bytes, alg: str = "sha256") -> str:
    h = hashlib.new(alg)
    h.update(data)
    return h.hexdigest()


def sign_message(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(key: str, message: str, signature: str) -> bool:
    return hmac.compare_digest(sign_message(key, message), signature)
