import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

ANONYMOUS = 0


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="csrf-token")


def generate_csrf_token(user_id: Optional[int] = None) -> str:
    token_data = {"u": user_id or ANONYMOUS, "ts": int(time.time())}
    return _serializer().dumps(token_data)


def validate_csrf_token(
    token: Optional[str], user_id: Optional[int] = None, max_age_hours: int = 2
) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return False
    return data.get("u") == (user_id or ANONYMOUS)
