from typing import Optional

import bcrypt
from fastapi import HTTPException, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "moneydiary_session"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="session")


def issue_session_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def read_session_token(token: Optional[str]) -> Optional[int]:
    """Return the user id carried by a session token, or None if it is unusable."""
    if not token:
        return None
    max_age = get_settings().session_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    return user_id if isinstance(user_id, int) else None


def optional_user_id(request: Request) -> Optional[int]:
    return read_session_token(request.cookies.get(SESSION_COOKIE))


def current_user_id(request: Request) -> int:
    user_id = optional_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
