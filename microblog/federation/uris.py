"""
microblog/federation/uris.py

Resolução de identidade: monta e interpreta as URIs públicas do nó.

Todas as URIs são funções puras de `settings.domain` e do username. A mesma
função é usada no momento da escrita (URI persistida) e no momento da
leitura (URI servida), então as duas sempre coincidem.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.config import settings
from microblog.models.actor import Actor
from microblog.models.user import User

PUBLIC_COLLECTION = "https://www.w3.org/ns/activitystreams#Public"

USERNAME_RE = re.compile(r"^[a-z0-9_-]{1,50}$")


@dataclass(frozen=True)
class ParsedActorUri:
    identifier: str


def base_url() -> str:
    return f"https://{settings.domain}"


def is_valid_username(username) -> bool:
    return isinstance(username, str) and USERNAME_RE.match(username) is not None


def build_actor_uri(username: str) -> str:
    return f"{base_url()}/users/{username}"


def build_inbox_uri(username: str | None = None) -> str:
    """Inbox do actor, ou o shared inbox do nó quando `username` é omitido."""
    if username is None:
        return f"{base_url()}/inbox"
    return f"{build_actor_uri(username)}/inbox"


def build_followers_uri(username: str) -> str:
    return f"{build_actor_uri(username)}/followers"


def build_post_uri(username: str, post_id: int) -> str:
    return f"{build_actor_uri(username)}/posts/{post_id}"


def build_key_id(username: str, fragment: str) -> str:
    return f"{build_actor_uri(username)}#{fragment}"


def build_handle(username: str, domain: str | None = None) -> str:
    return f"@{username}@{domain or settings.domain}"


def parse_actor_uri(uri) -> ParsedActorUri | None:
    """
    Inverso de `build_actor_uri`.

    Retorna None para qualquer URI que não seja exatamente a rota de actor
    deste nó: outro esquema, outro host, caminho diferente, query, fragmento
    ou identificador fora do padrão de username.
    """
    if not isinstance(uri, str):
        return None

    parts = urlsplit(uri)
    if parts.scheme != "https" or parts.netloc != settings.domain:
        return None
    if parts.query or parts.fragment:
        return None

    segments = parts.path.split("/")
    # ["", "users", "{identifier}"]
    if len(segments) != 3 or segments[0] != "" or segments[1] != "users":
        return None

    identifier = segments[2]
    if not is_valid_username(identifier):
        return None
    return ParsedActorUri(identifier=identifier)


async def resolve_local_actor(session: AsyncSession, username: str) -> Actor | None:
    """Busca o actor local pelo username; None se a conta não existir."""
    if not is_valid_username(username):
        return None

    stmt = (
        select(Actor)
        .join(User, User.id == Actor.user_id)
        .where(User.username == username)
    )
    return (await session.execute(stmt)).scalar_one_or_none()
