"""
microblog/federation/handlers.py

Registra os handlers de atividades ActivityPub no servidor apkit.

Handlers:
- Follow → registra o follower e enfileira o Accept para o delivery worker
- Undo   → desfaz o follow

Os handlers releem o corpo JSON da requisição, decidem a variante com
`parse_activity()` e delegam ao inbox. Sempre respondem 202: o remetente
não recebe retorno sobre atividades descartadas.
"""

import json
import logging

from apkit.client.asyncio.client import ActivityPubClient
from apkit.models import Follow, Undo
from apkit.server.types import Context
from fastapi import Response

from microblog import database
from microblog.federation.activities import (
    FOLLOW,
    InboxActivity,
    RemoteActor,
    UnknownActivity,
    actor_handle,
    parse_activity,
    remote_actor_from_dict,
)
from microblog.federation.inbox import process_activity
from microblog.federation.uris import parse_actor_uri
from microblog.services import queue as queue_module

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Actor remoto buscado pela URI
# ---------------------------------------------------------------------------


def _href(value) -> str | None:
    if value is None or isinstance(value, str):
        return value
    for attr in ("href", "id"):
        href = getattr(value, attr, None)
        if isinstance(href, str):
            return href
    return None


def remote_actor_from_apkit(actor) -> RemoteActor | None:
    """RemoteActor a partir de um Actor do apkit; None se faltar id ou inbox."""
    if actor is None or isinstance(actor, str):
        return None

    uri = _href(getattr(actor, "id", None))
    inbox_url = _href(getattr(actor, "inbox", None))
    if not uri or not inbox_url:
        return None

    endpoints = getattr(actor, "endpoints", None)
    shared_inbox_url = None
    if isinstance(endpoints, dict):
        shared_inbox_url = _href(endpoints.get("sharedInbox"))
    elif endpoints is not None:
        shared_inbox_url = _href(getattr(endpoints, "shared_inbox", None))

    preferred_username = getattr(actor, "preferred_username", None)
    name = getattr(actor, "name", None)

    return RemoteActor(
        uri=uri,
        handle=actor_handle(
            uri, preferred_username if isinstance(preferred_username, str) else None
        ),
        inbox_url=inbox_url,
        name=name if isinstance(name, str) else None,
        shared_inbox_url=shared_inbox_url,
        url=_href(getattr(actor, "url", None)),
    )


async def fetch_remote_actor(uri: str) -> RemoteActor | None:
    try:
        async with ActivityPubClient() as client:
            fetched = await client.actor.fetch(uri)
    except Exception as e:
        log.warning(f"Não foi possível buscar o actor {uri}: {e}", exc_info=True)
        return None
    if isinstance(fetched, dict):
        return remote_actor_from_dict(fetched)
    return remote_actor_from_apkit(fetched)


async def read_activity(ctx: Context) -> InboxActivity:
    """
    Variante da atividade recebida, a partir do corpo que o apkit já
    verificou. Corpo ilegível vira UnknownActivity.
    """
    try:
        data = json.loads(await ctx.request.body())
    except ValueError as e:
        log.debug(f"Corpo do inbox ilegível: {e}")
        return UnknownActivity(type=None)
    return parse_activity(data)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def on_follow(ctx: Context):
    """
    Resolve o actor remoto (embutido ou buscado pela URI), registra o
    follow e enfileira o Accept. Não bloqueia na entrega.
    """
    follow = await read_activity(ctx)
    if follow.kind != FOLLOW:
        log.debug(f"Atividade ignorada no handler de Follow: {follow.kind}")
        return Response(status_code=202)

    if parse_actor_uri(follow.object_uri) is None:
        log.debug(f"Follow descartado: objeto não é um actor local: {follow.object_uri}")
        return Response(status_code=202)

    follower = follow.actor
    if follower is None and follow.actor_uri:
        follower = await fetch_remote_actor(follow.actor_uri)
    if follower is None:
        log.debug(f"Follow descartado: actor não resolvido: {follow.actor_uri}")
        return Response(status_code=202)

    async with database.async_session_factory() as session:
        async with session.begin():
            delivery = await process_activity(session, follow, follower)

    if delivery is not None:
        await queue_module.delivery_queue.put(delivery)
    return Response(status_code=202)


async def on_undo(ctx: Context):
    undo = await read_activity(ctx)

    async with database.async_session_factory() as session:
        async with session.begin():
            await process_activity(session, undo)

    return Response(status_code=202)


# ---------------------------------------------------------------------------
# Registro
# ---------------------------------------------------------------------------


def build_activity_handlers() -> dict:
    """Tabela tipo de atividade → handler, montada uma vez no startup."""
    return {Follow: on_follow, Undo: on_undo}


def register_handlers(app, handlers: dict | None = None) -> None:
    """
    Registra os handlers de atividades no servidor apkit.
    Chamado em main.py após criar a instância ActivityPubServer.
    """
    for activity_type, handler in (handlers or build_activity_handlers()).items():
        app.on(activity_type)(handler)
