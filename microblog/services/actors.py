"""
microblog/services/actors.py

Persistência de actors remotos.

`upsert_actor()` insere o actor ou, se a `uri` já existir, atualiza os
campos com a versão mais recente recebida da rede.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.database import insert_for
from microblog.federation.activities import RemoteActor
from microblog.models.actor import Actor


async def upsert_actor(session: AsyncSession, remote: RemoteActor) -> Actor:
    values = {
        "uri": remote.uri,
        "handle": remote.handle,
        "name": remote.name,
        "inbox_url": remote.inbox_url,
        "shared_inbox_url": remote.shared_inbox_url,
        "url": remote.url,
    }
    stmt = insert_for(session, Actor).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["uri"],
        set_={k: v for k, v in values.items() if k != "uri"},
    )
    await session.execute(stmt)

    return (
        await session.execute(
            select(Actor)
            .where(Actor.uri == remote.uri)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
