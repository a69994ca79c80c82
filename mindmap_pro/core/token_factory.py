"""Pure functions for creating and decoding JWT access tokens.

No classes, no state: just encode/decode. Used by the auth dependency and
by the login and registration flows.
"""

import hashlib
import hmac
import base64
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

ISSUER = "mindmap-pro"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded JWT payload. Immutable."""
    sub: str
    role: str
    exp: datetime


def create_token(
    subject: str,
    role: str,
    secret: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60 * 24,
    token_id: Optional[str] = None,
) -> str:
    """Create a signed JWT.

    Args:
        subject: User id.
        role: ``"USER"`` or ``"ADMIN"``.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.
        expires_minutes: Minutes until expiry.
        token_id: Optional ``jti`` claim, making each token unique.
    """
    if algorithm != "HS256":
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    now = time.time()
    payload = {
        "sub": subject,
        "role": role,
        "iat": int(now),
        "exp": int(now + expires_minutes * 60),
        "iss": ISSUER,
    }
    if token_id:
        payload["jti"] = token_id

    header = {"alg": "HS256", "typ": "JWT"}
    segments = [
        _b64encode(json.dumps(header, separators=(",", ":")).encode()),
        _b64encode(json.dumps(payload, separators=(",", ":")).encode()),
    ]
    signing_input = b".".join(segments)
    signature = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    segments.append(_b64encode(signature))
    return b".".join(segments).decode()


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[TokenPayload]:
    """Decode and validate a JWT.

    Returns ``None`` on any validation failure (bad signature, expired,
    foreign issuer, malformed) rather than raising.
    """
    if algorithm != "HS256":
        return None
    try:
        parts = token.encode().split(b".")
        if len(parts) != 3:
            return None

        header = json.loads(_b64decode(parts[0]))
        if header.get("alg") != "HS256":
            return None

        signing_input = parts[0] + b"." + parts[1]
        expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, _b64decode(parts[2])):
            return None

        payload = json.loads(_b64decode(parts[1]))
        if payload.get("iss") != ISSUER:
            return None

        exp = payload.get("exp", 0)
        if time.time() > exp:
            return None

        sub = payload.get("sub")
        if not sub:
            return None

        return TokenPayload(
            sub=sub,
            role=payload.get("role", ""),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
    except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError):
        return None


# --- base64url helpers (no padding, URL-safe) ---

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += b"=" * padding
    return base64.urlsafe_b64decode(data)
