import sys
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


class InvalidToken(ValueError):
    pass


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="ledger-bearer")


def issue_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def resolve_owner(token: str, max_age_hours: Optional[int] = None) -> int:
    """Map a bearer token to the user id it was issued for."""
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired as exc:
        raise InvalidToken("Token expired") from exc
    except BadSignature as exc:
        raise InvalidToken("Invalid token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        raise InvalidToken("Invalid token")
    return user_id


if __name__ == "__main__":
    print(issue_token(int(sys.argv[1]) if len(sys.argv) > 1 else 1))
