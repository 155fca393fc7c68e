"""
microblog/federation/inbox.py

Máquina de estados do inbox.

Transições:
- Follow  → registra o follower e devolve um Accept para entrega
- Undo    → remove o follow se a atividade desfeita for um Follow
- outros  → ignorados

A entrega é at-least-once e sem ordem garantida: reprocessar um Follow não
duplica a aresta, e um Undo sem aresta correspondente não faz nada. Entradas
malformadas são descartadas com log; nada é devolvido ao remetente.
"""

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.database import insert_for
from microblog.federation.activities import (
    FOLLOW,
    UNDO,
    FollowActivity,
    InboxActivity,
    RemoteActor,
    UndoActivity,
)
from microblog.federation.uris import build_actor_uri, parse_actor_uri, resolve_local_actor
from microblog.models.actor import Actor
from microblog.models.follow import Follow
from microblog.services.actors import upsert_actor
from microblog.services.queue import OutboundDelivery

log = logging.getLogger(__name__)

AS_CONTEXT = "https://www.w3.org/ns/activitystreams"


def follow_as_object(follow: FollowActivity) -> dict:
    """O Follow original no formato em que vai dentro do Accept."""
    obj = {"type": FOLLOW, "actor": follow.actor_uri, "object": follow.object_uri}
    if follow.id:
        obj = {"id": follow.id, **obj}
    return obj


def build_accept(local_actor_uri: str, follow: FollowActivity) -> dict:
    # Follow sem id: Accept com id aleatório
    if follow.id:
        accept_id = f"{local_actor_uri}#accept/{follow.id}"
    else:
        accept_id = f"{local_actor_uri}#accepts/{uuid.uuid4()}"
    return {
        "@context": AS_CONTEXT,
        "id": accept_id,
        "type": "Accept",
        "actor": local_actor_uri,
        "to": follow.actor_uri,
        "object": follow_as_object(follow),
    }


async def handle_follow(
    session: AsyncSession,
    follow: FollowActivity,
    follower: RemoteActor | None = None,
) -> OutboundDelivery | None:
    """
    Registra o follow e retorna o Accept a ser entregue ao follower.

    `follower` é o actor remoto já resolvido; se omitido, usa a representação
    embutida na atividade. Retorna None quando o Follow é descartado.
    """
    parsed = parse_actor_uri(follow.object_uri)
    if parsed is None:
        log.debug(f"Follow descartado: objeto não é um actor local: {follow.object_uri}")
        return None

    follower = follower or follow.actor
    if follower is None or not follower.uri or not follower.inbox_url:
        log.debug(f"Follow descartado: actor sem id ou inbox: {follow.id}")
        return None
    if follow.actor_uri and follow.actor_uri != follower.uri:
        log.debug(
            f"Follow descartado: actor {follow.actor_uri} não confere "
            f"com o actor resolvido {follower.uri}"
        )
        return None
    if parse_actor_uri(follower.uri) is not None:
        log.debug(f"Follow descartado: follower é um actor local: {follower.uri}")
        return None

    following = await resolve_local_actor(session, parsed.identifier)
    if following is None:
        log.debug(f"Follow descartado: conta local inexistente: {parsed.identifier}")
        return None

    follower_row = await upsert_actor(session, follower)

    stmt = (
        insert_for(session, Follow)
        .values(following_id=following.id, follower_id=follower_row.id)
        .on_conflict_do_nothing(index_elements=["following_id", "follower_id"])
    )
    await session.execute(stmt)

    log.info(f"Follow aceito de {follower.uri} para {parsed.identifier}")

    accept_follow = FollowActivity(
        id=follow.id,
        actor_uri=follower.uri,
        object_uri=follow.object_uri,
    )
    return OutboundDelivery(
        sender=parsed.identifier,
        inbox_url=follower.inbox_url,
        shared_inbox_url=follower.shared_inbox_url,
        activity=build_accept(build_actor_uri(parsed.identifier), accept_follow),
    )


async def handle_undo(session: AsyncSession, undo: UndoActivity) -> bool:
    """
    Desfaz um Follow. Retorna True se alguma aresta foi removida.

    Só age quando o objeto é um Follow embutido, o actor do Undo é o mesmo
    actor do Follow e o alvo do Follow é um actor local.
    """
    follow = undo.object
    if follow is None or follow.kind != FOLLOW:
        log.debug(f"Undo ignorado: objeto não é um Follow: {undo.id}")
        return False
    if not undo.actor_uri:
        log.debug(f"Undo ignorado: sem actor: {undo.id}")
        return False
    if follow.actor_uri and follow.actor_uri != undo.actor_uri:
        log.debug(
            f"Undo ignorado: actor {undo.actor_uri} não é o autor do Follow "
            f"({follow.actor_uri})"
        )
        return False

    parsed = parse_actor_uri(follow.object_uri)
    if parsed is None:
        log.debug(f"Undo ignorado: alvo não é um actor local: {follow.object_uri}")
        return False

    following = await resolve_local_actor(session, parsed.identifier)
    if following is None:
        return False

    follower_ids = select(Actor.id).where(Actor.uri == undo.actor_uri).scalar_subquery()
    result = await session.execute(
        delete(Follow).where(
            Follow.following_id == following.id,
            Follow.follower_id == follower_ids,
        )
    )
    if result.rowcount:
        log.info(f"Follow de {undo.actor_uri} para {parsed.identifier} desfeito")
    return bool(result.rowcount)


async def process_activity(
    session: AsyncSession,
    activity: InboxActivity,
    follower: RemoteActor | None = None,
) -> OutboundDelivery | None:
    """Despacha pela variante; retorna a entrega gerada, se houver."""
    if activity.kind == FOLLOW:
        return await handle_follow(session, activity, follower)
    if activity.kind == UNDO:
        await handle_undo(session, activity)
        return None

    log.debug(f"Atividade ignorada: tipo {activity.type!r}")
    return None
