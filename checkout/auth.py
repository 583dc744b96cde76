from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt

ALGORITHM = "HS256"
SERVICE_TOKEN_TTL = timedelta(minutes=5)


def create_service_token(secret: str, subject: str = "web") -> str:
    expire = datetime.now(timezone.utc) + SERVICE_TOKEN_TTL
    return jwt.encode({"sub": subject, "exp": expire}, secret, algorithm=ALGORITHM)


def verify_token(request: Request, authorization: Optional[str] = Header(None)):
    secret = request.app.state.settings.jwt_secret
    if not secret:
        return

    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        jwt.decode(token, secret, algorithms=[ALGORITHM])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
