import logging

from sqlalchemy.ext.asyncio import AsyncSession

from microblog.federation.uris import build_post_uri, resolve_local_actor
from microblog.models.post import Post

log = logging.getLogger(__name__)


async def create_post(
    session: AsyncSession, username: str, content: str
) -> tuple[Post, str] | None:
    """
    Cria um post da conta local e retorna (post, URI do objeto).
    A URI é a mesma servida depois em GET /users/{username}/posts/{id}.
    """
    actor = await resolve_local_actor(session, username)
    if actor is None:
        return None

    post = Post(actor_id=actor.id, content=content)
    session.add(post)
    await session.flush()

    uri = build_post_uri(username, post.id)
    log.info(f"Post criado: {uri}")
    return post, uri
