"""
microblog/federation/followers.py

Coleção de followers da conta local.

A listagem é paginada por cursor (keyset sobre `follows.created` e
`follows.id`, do mais recente para o mais antigo), estável sob inserções
concorrentes. O cursor tem a forma "{created ISO 8601}_{follow id}".
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from apkit.models import OrderedCollection, OrderedCollectionPage
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from microblog.config import settings
from microblog.federation.uris import build_followers_uri
from microblog.models.actor import Actor
from microblog.models.follow import Follow
from microblog.models.user import User

_FOLLOW_ID_RE = re.compile(r"[0-9]{1,18}")


class InvalidCursor(ValueError):
    pass


@dataclass(frozen=True)
class Recipient:
    """O mínimo de que uma entrega precisa para alcançar um follower."""

    id: str
    inbox_id: str
    shared_inbox: str | None = None


@dataclass(frozen=True)
class FollowersPage:
    items: list[Recipient]
    next_cursor: str | None = None


def _as_utc(value: datetime) -> datetime:
    # SQLite devolve datetimes sem tzinfo; o valor gravado já é UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def encode_cursor(created: datetime, follow_id: int) -> str:
    return f"{_as_utc(created).replace(tzinfo=None).isoformat()}_{follow_id}"


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    created_s, sep, id_s = cursor.rpartition("_")
    # o id precisa caber num inteiro de 64 bits com sinal
    if not sep or _FOLLOW_ID_RE.fullmatch(id_s) is None:
        raise InvalidCursor(f"Cursor inválido: {cursor!r}")
    try:
        return _as_utc(datetime.fromisoformat(created_s)), int(id_s)
    except ValueError as e:
        raise InvalidCursor(f"Cursor inválido: {cursor!r}") from e


def _following_actor_ids(username: str):
    return (
        select(Actor.id)
        .join(User, User.id == Actor.user_id)
        .where(User.username == username)
        .scalar_subquery()
    )


async def list_followers(
    session: AsyncSession,
    username: str,
    cursor: str | None = None,
    limit: int | None = None,
) -> FollowersPage:
    """
    Uma página de followers de `username`, mais recentes primeiro.
    Levanta InvalidCursor se o cursor não puder ser decodificado.
    """
    limit = limit or settings.followers_page_size
    follower = aliased(Actor)

    stmt = (
        select(Follow.id, Follow.created, follower)
        .join(follower, follower.id == Follow.follower_id)
        .where(Follow.following_id == _following_actor_ids(username))
        .order_by(Follow.created.desc(), Follow.id.desc())
        .limit(limit + 1)
    )
    if cursor is not None:
        created, follow_id = decode_cursor(cursor)
        stmt = stmt.where(
            or_(
                Follow.created < created,
                and_(Follow.created == created, Follow.id < follow_id),
            )
        )

    rows = (await session.execute(stmt)).all()
    has_more = len(rows) > limit
    rows = rows[:limit]

    items = [
        Recipient(
            id=row[2].uri,
            inbox_id=row[2].inbox_url,
            shared_inbox=row[2].shared_inbox_url,
        )
        for row in rows
    ]
    next_cursor = encode_cursor(rows[-1][1], rows[-1][0]) if has_more else None
    return FollowersPage(items=items, next_cursor=next_cursor)


async def count_followers(session: AsyncSession, username: str) -> int:
    stmt = (
        select(func.count())
        .select_from(Follow)
        .where(Follow.following_id == _following_actor_ids(username))
    )
    return (await session.execute(stmt)).scalar_one()


def build_followers_collection(username: str, total: int) -> OrderedCollection:
    collection_uri = build_followers_uri(username)
    return OrderedCollection(
        id=collection_uri,
        totalItems=total,
        first=f"{collection_uri}?cursor=",
    )


def build_followers_page(
    username: str, page: FollowersPage, cursor: str | None
) -> OrderedCollectionPage:
    """Página da coleção; sem itens, `orderedItems` é omitido do documento."""
    collection_uri = build_followers_uri(username)
    return OrderedCollectionPage(
        id=f"{collection_uri}?cursor={cursor or ''}",
        partOf=collection_uri,
        orderedItems=[item.id for item in page.items],
        next=f"{collection_uri}?cursor={page.next_cursor}" if page.next_cursor else None,
    )
