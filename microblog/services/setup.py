"""
microblog/services/setup.py

Criação da conta local (fluxo de setup).

O nó hospeda uma única conta. Depois de criada, chamadas seguintes a
`setup_account()` não alteram nada.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.database import insert_for
from microblog.federation.uris import (
    build_actor_uri,
    build_handle,
    build_inbox_uri,
    is_valid_username,
)
from microblog.models.actor import Actor
from microblog.models.user import User

log = logging.getLogger(__name__)

# O nó hospeda uma única conta, sempre nesta linha de `users`
LOCAL_USER_ID = 1


class InvalidAccountData(ValueError):
    pass


async def get_local_account(session: AsyncSession) -> tuple[User, Actor] | None:
    stmt = select(User, Actor).join(Actor, Actor.user_id == User.id).limit(1)
    row = (await session.execute(stmt)).first()
    return (row[0], row[1]) if row else None


async def setup_account(session: AsyncSession, username, name) -> User | None:
    """
    Cria o usuário e o actor local numa única transação do chamador.

    Retorna None sem escrever nada se a conta já existir.
    Levanta InvalidAccountData para username fora de [a-z0-9_-]{1,50}
    ou nome vazio.

    O usuário tem sempre o id LOCAL_USER_ID e a inserção ignora conflitos:
    se dois setups correrem ao mesmo tempo, só o primeiro cria a conta.
    """
    if await get_local_account(session) is not None:
        return None

    if not is_valid_username(username):
        raise InvalidAccountData(f"Username inválido: {username!r}")
    if not isinstance(name, str) or not name.strip():
        raise InvalidAccountData("Nome não pode ser vazio")

    stmt = (
        insert_for(session, User)
        .values(id=LOCAL_USER_ID, username=username)
        .on_conflict_do_nothing(index_elements=["id"])
        .returning(User.id)
    )
    if (await session.execute(stmt)).scalar_one_or_none() is None:
        log.info(f"Setup de {username} ignorado: conta criada por outra requisição")
        return None

    session.add(
        Actor(
            user_id=LOCAL_USER_ID,
            uri=build_actor_uri(username),
            handle=build_handle(username),
            name=name.strip(),
            inbox_url=build_inbox_uri(username),
            shared_inbox_url=build_inbox_uri(),
            url=build_actor_uri(username),
        )
    )
    await session.flush()

    log.info(f"Conta {username} criada")
    return await session.get(User, LOCAL_USER_ID)
