"""
microblog/routes.py

Endpoints HTTP do nó.

`build_routes()` monta uma única vez a tabela (caminho, endpoint, métodos)
que main.py registra no servidor. As rotas de inbox ficam com o apkit
(ver main.py e federation/handlers.py).
"""

import logging
import re
from pathlib import Path
from typing import NamedTuple

from apkit.server.responses import ActivityResponse
from fastapi import Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.database import get_session
from microblog.federation.actor import build_actor
from microblog.federation.followers import (
    InvalidCursor,
    build_followers_collection,
    build_followers_page,
    count_followers,
    list_followers,
)
from microblog.federation.keys import KeyMaterialError
from microblog.federation.objects import dispatch_post
from microblog.federation.uris import resolve_local_actor
from microblog.services.setup import InvalidAccountData, get_local_account, setup_account

log = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

# ids são inteiros de 64 bits com sinal no SQLite
_POST_ID_RE = re.compile(r"[0-9]{1,18}")


class Route(NamedTuple):
    path: str
    endpoint: object
    methods: tuple[str, ...]


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Not found"}, status_code=404)


def wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "text/html" in accept and "json" not in accept


# ---------------------------------------------------------------------------
# Actor e coleções
# ---------------------------------------------------------------------------


async def get_actor(
    request: Request, username: str, session: AsyncSession = Depends(get_session)
):
    """Documento do actor, ou a página de perfil quando o cliente pede HTML."""
    if wants_html(request):
        actor = await resolve_local_actor(session, username)
        if actor is None:
            return _not_found()
        return templates.TemplateResponse(
            request,
            "profile.html",
            {
                "name": actor.name or username,
                "username": username,
                "handle": actor.handle,
                "followers": await count_followers(session, username),
            },
        )

    try:
        person = await build_actor(session, username)
    except KeyMaterialError as e:
        log.error(f"Chaves de {username} corrompidas: {e}")
        return JSONResponse({"error": "Key material unavailable"}, status_code=500)
    if person is None:
        return _not_found()
    return ActivityResponse(person)


async def get_followers(
    username: str,
    cursor: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    """
    Sem `cursor`: a OrderedCollection com o total.
    Com `cursor` (vazio = primeira página): uma OrderedCollectionPage.
    """
    if await resolve_local_actor(session, username) is None:
        return _not_found()

    if cursor is None:
        total = await count_followers(session, username)
        return ActivityResponse(build_followers_collection(username, total))

    try:
        page = await list_followers(session, username, cursor or None)
    except InvalidCursor:
        return JSONResponse({"error": "Invalid cursor"}, status_code=400)
    return ActivityResponse(build_followers_page(username, page, cursor))


async def get_post(
    username: str, post_id: str, session: AsyncSession = Depends(get_session)
):
    if _POST_ID_RE.fullmatch(post_id) is None:
        return _not_found()
    note = await dispatch_post(session, username, int(post_id))
    if note is None:
        return _not_found()
    return ActivityResponse(note)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


async def home(session: AsyncSession = Depends(get_session)):
    account = await get_local_account(session)
    if account is None:
        return RedirectResponse("/setup", status_code=303)
    return RedirectResponse(f"/users/{account[0].username}", status_code=303)


async def get_setup(request: Request, session: AsyncSession = Depends(get_session)):
    if await get_local_account(session) is not None:
        return RedirectResponse("/", status_code=303)
    return templates.TemplateResponse(request, "setup.html", {})


async def post_setup(request: Request, session: AsyncSession = Depends(get_session)):
    """Cria a conta local. Com a conta já criada, redireciona sem alterar nada."""
    form = await request.form()
    try:
        user = await setup_account(session, form.get("username"), form.get("name"))
    except InvalidAccountData as e:
        log.debug(f"Setup rejeitado: {e}")
        return RedirectResponse("/setup", status_code=303)

    if user is None:
        log.debug("Setup ignorado: conta já existe")
    return RedirectResponse("/", status_code=303)


def build_routes() -> list[Route]:
    return [
        Route("/", home, ("GET",)),
        Route("/setup", get_setup, ("GET",)),
        Route("/setup", post_setup, ("POST",)),
        Route("/users/{username}", get_actor, ("GET",)),
        Route("/users/{username}/followers", get_followers, ("GET",)),
        Route("/users/{username}/posts/{post_id}", get_post, ("GET",)),
    ]
