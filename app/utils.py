from datetime import timedelta, datetime, timezone
import re
from typing import Optional

from jose import jwt
from jose.exceptions import JWTError

from config import contest_settings, jwt_settings
from logger_config import logger


def validate_contest_code(code: str, pattern: str = contest_settings.CONTEST_CODE_PATTERN) -> bool:
    return re.fullmatch(pattern, code or "") is not None


def validate_participant_key(key: str, min_length: int = contest_settings.PRN_MIN_LENGTH) -> bool:
    """PRN-like participant keys only need a minimum length."""
    return len((key or "").strip()) >= min_length


def format_remaining(remaining: timedelta) -> str:
    # Minutes are not wrapped into hours: a 90 minute contest starts at "90:00"
    total_seconds = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02}:{seconds:02}"


def create_session_token(session_id: str, participant_key: str, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(days=jwt_settings.SESSION_TOKEN_EXPIRE_DAYS)
    now = datetime.now(timezone.utc)
    to_encode = {
        "sid": session_id,
        "sub": participant_key,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, jwt_settings.SECRET_KEY, algorithm=jwt_settings.ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    """Return the session id carried by ``token``, or None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, jwt_settings.SECRET_KEY, algorithms=[jwt_settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        return None
    return payload.get("sid")
