"""Credential hashing (bcrypt) and signed session tokens (JWT)."""
from datetime import datetime
import bcrypt
import jwt
from app.config import get_settings

settings = get_settings()


def _pwd_bytes(password: str, max_len: int = 72) -> bytes:
    return password.encode("utf-8")[:max_len]


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt(rounds=10)).decode("utf-8")


def create_session_token(
    session_id: str,
    user_id: int,
    username: str,
    profile_picture: str | None,
    expires_at: datetime,
) -> str:
    # PyJWT expects "sub" to be a string
    payload = {
        "sub": str(user_id),
        "sid": session_id,
        "username": username,
        "profile_picture": profile_picture,
        "exp": expires_at,
    }
    raw = jwt.encode(
        payload,
        settings.session_secret_key,
        algorithm=settings.session_algorithm,
    )
    return raw if isinstance(raw, str) else raw.decode("utf-8")


def decode_token(token: str) -> dict | None:
    payload, _ = decode_token_with_error(token)
    return payload


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode JWT; returns (payload, error_message)."""
    if not token or not isinstance(token, str):
        return None, "empty token"
    token = token.strip()
    try:
        payload = jwt.decode(
            token,
            settings.session_secret_key,
            algorithms=[settings.session_algorithm],
        )
        return payload, None
    except jwt.ExpiredSignatureError as e:
        return None, str(e)
    except jwt.PyJWTError as e:
        return None, str(e)
