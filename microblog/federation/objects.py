from datetime import datetime, timezone

from apkit.models import Note
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.federation.uris import (
    PUBLIC_COLLECTION,
    build_actor_uri,
    build_followers_uri,
    build_post_uri,
    is_valid_username,
)
from microblog.models.actor import Actor
from microblog.models.post import Post
from microblog.models.user import User


def format_published(created: datetime) -> str:
    """Instante UTC no formato `YYYY-MM-DDTHH:MM:SSZ`; datetimes sem tzinfo são tratados como UTC."""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


async def get_post(session: AsyncSession, username: str, post_id: int) -> Post | None:
    """O post `post_id` se ele pertencer ao actor local de `username`."""
    if not is_valid_username(username):
        return None

    stmt = (
        select(Post)
        .join(Actor, Actor.id == Post.actor_id)
        .join(User, User.id == Actor.user_id)
        .where(User.username == username, Post.id == post_id)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


def build_note(username: str, post: Post) -> Note:
    post_uri = build_post_uri(username, post.id)
    return Note(
        id=post_uri,
        attributedTo=build_actor_uri(username),
        to=[PUBLIC_COLLECTION],
        cc=[build_followers_uri(username)],
        content=post.content,
        mediaType="text/html",
        published=format_published(post.created),
        url=post_uri,
    )


async def dispatch_post(session: AsyncSession, username: str, post_id: int) -> Note | None:
    """
    Note federado do post, endereçado ao público com cópia para os followers.
    None se o par (username, post_id) não existir.
    """
    post = await get_post(session, username, post_id)
    if post is None:
        return None
    return build_note(username, post)
