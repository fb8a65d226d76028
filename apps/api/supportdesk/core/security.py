from datetime import datetime, timedelta, timezone
import jwt
from .settings import settings

ALGORITHM = "HS256"


def create_access_token(sub: str, expires_min: int = 120) -> str:
    # 토큰 발급 API 는 별도 서비스; 테스트/운영 도구용
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_min)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
