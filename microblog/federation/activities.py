"""
microblog/federation/activities.py

Variantes fechadas das atividades que o inbox entende.

- FollowActivity  — pedido de follow
- UndoActivity    — desfaz uma atividade anterior (só Follow é tratado)
- UnknownActivity — qualquer outro tipo; ignorado, mas nunca um erro

`parse_activity()` decide a variante pelo campo `type` do JSON recebido.
Campos ausentes viram None; quem valida é o inbox.
"""

from dataclasses import dataclass, field
from urllib.parse import urlsplit

FOLLOW = "Follow"
UNDO = "Undo"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RemoteActor:
    """Os campos de um actor remoto que o nó persiste."""

    uri: str
    handle: str
    inbox_url: str
    name: str | None = None
    shared_inbox_url: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class FollowActivity:
    id: str | None
    actor_uri: str | None
    object_uri: str | None
    # Representação do actor quando vem embutida na atividade
    actor: RemoteActor | None = None
    kind: str = field(default=FOLLOW, init=False)


@dataclass(frozen=True)
class UnknownActivity:
    type: str | None
    id: str | None = None
    kind: str = field(default=UNKNOWN, init=False)


@dataclass(frozen=True)
class UndoActivity:
    id: str | None
    actor_uri: str | None
    # Atividade desfeita, quando embutida; None se veio só a URI
    object: "FollowActivity | UndoActivity | UnknownActivity | None"
    kind: str = field(default=UNDO, init=False)


InboxActivity = FollowActivity | UndoActivity | UnknownActivity


def _href(value) -> str | None:
    """Extrai a URL de uma string, de um Link/objeto com `href`/`id` ou de uma lista."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        for item in value:
            href = _href(item)
            if href:
                return href
        return None
    if isinstance(value, dict):
        return _href(value.get("href")) or _href(value.get("id"))
    return None


def actor_handle(uri: str, preferred_username: str | None) -> str:
    """@nome@host do actor; sem preferredUsername usa o último segmento da URI."""
    parts = urlsplit(uri)
    username = preferred_username or parts.path.rstrip("/").split("/")[-1]
    return f"@{username}@{parts.netloc}"


def remote_actor_from_dict(data) -> RemoteActor | None:
    """Monta um RemoteActor a partir de um documento de actor; None se faltar id ou inbox."""
    if not isinstance(data, dict):
        return None

    uri = _href(data.get("id"))
    inbox_url = _href(data.get("inbox"))
    if not uri or not inbox_url:
        return None

    endpoints = data.get("endpoints")
    shared_inbox_url = (
        _href(endpoints.get("sharedInbox")) if isinstance(endpoints, dict) else None
    )
    name = data.get("name")

    return RemoteActor(
        uri=uri,
        handle=actor_handle(uri, data.get("preferredUsername")),
        inbox_url=inbox_url,
        name=name if isinstance(name, str) else None,
        shared_inbox_url=shared_inbox_url,
        url=_href(data.get("url")),
    )


def parse_activity(data) -> InboxActivity:
    if not isinstance(data, dict):
        return UnknownActivity(type=None)

    activity_type = data.get("type")
    activity_id = _href(data.get("id"))

    if activity_type == FOLLOW:
        actor = data.get("actor")
        return FollowActivity(
            id=activity_id,
            actor_uri=_href(actor),
            object_uri=_href(data.get("object")),
            actor=remote_actor_from_dict(actor),
        )

    if activity_type == UNDO:
        obj = data.get("object")
        return UndoActivity(
            id=activity_id,
            actor_uri=_href(data.get("actor")),
            object=parse_activity(obj) if isinstance(obj, dict) else None,
        )

    return UnknownActivity(
        type=activity_type if isinstance(activity_type, str) else None,
        id=activity_id,
    )
