from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_MAX_AGE_HOURS = 2


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="csrf-token")


def generate_csrf_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: int, max_age_hours: int = CSRF_MAX_AGE_HOURS
) -> bool:
    """Check the signature, the owning user and the token age."""
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        return False
    return isinstance(data, dict) and data.get("u") == user_id
