import uuid

import jwt
from fastapi import Request

from .exceptions import AuthenticationError
from .settings import settings


def decode_http_access_token(token: str) -> uuid.UUID:
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
    )

    user_id = payload.get("sub")
    if not user_id:
        raise jwt.InvalidTokenError("Token missing user ID")

    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise jwt.InvalidTokenError("Invalid user ID format in token")


def extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get("access_token")


async def jwt_protect(request: Request) -> uuid.UUID:
    token = extract_bearer_token(request)
    if not token:
        raise AuthenticationError("Not authenticated")

    try:
        return decode_http_access_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")
