from dataclasses import dataclass

from fastapi import Request

from .sensitive_hash import SensitiveHash


@dataclass(frozen=True)
class ActorContext:
    ip_hash: str | None = None
    user_agent: str | None = None


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


async def get_actor_context(request: Request) -> ActorContext:
    return ActorContext(
        ip_hash=SensitiveHash.hash_ip(client_ip(request)),
        user_agent=request.headers.get("user-agent"),
    )
