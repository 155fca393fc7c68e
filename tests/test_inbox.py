"""
Testes para microblog/federation/inbox.py

Cobre:
- Follow: grava o follower e a aresta, devolve um único Accept para o inbox dele
- Follow: Accept com actor, to e object corretos, entregue no shared inbox
- Follow sem id: Accept com id único
- Follow: reprocessar o mesmo Follow não falha nem duplica a aresta
- Follow: reprocessar atualiza os dados do actor remoto
- Follow: alvo que não é actor local, conta inexistente ou actor sem inbox → descartado
- Undo(Follow): remove a aresta
- Undo(Follow) sem aresta: nada muda, nada falha
- Undo com objeto que não é Follow, ou de outro actor → ignorado
- Tipos desconhecidos → ignorados
"""

import pytest
from sqlalchemy import func, select


async def _edge_count(session) -> int:
    from microblog.models.follow import Follow

    return (await session.execute(select(func.count()).select_from(Follow))).scalar_one()


async def _follow(session, doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import process_activity

    return await process_activity(session, parse_activity(doc))


# ---------------------------------------------------------------------------
# Follow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_follow_records_edge_and_follower(session, alice, make_follow_doc):
    from microblog.federation.uris import resolve_local_actor
    from microblog.models.actor import Actor
    from microblog.models.follow import Follow

    await _follow(session, make_follow_doc())

    bob = (
        await session.execute(select(Actor).where(Actor.uri == "https://remote.example/users/bob"))
    ).scalar_one()
    edge = (await session.execute(select(Follow))).scalar_one()
    local = await resolve_local_actor(session, "alice")

    assert edge.following_id == local.id
    assert edge.follower_id == bob.id
    assert bob.user_id is None
    assert bob.handle == "@bob@remote.example"
    assert bob.inbox_url == "https://remote.example/users/bob/inbox"
    assert bob.shared_inbox_url == "https://remote.example/inbox"


@pytest.mark.asyncio
async def test_follow_returns_single_accept_for_follower(session, alice, make_follow_doc):
    follow_doc = make_follow_doc()

    delivery = await _follow(session, follow_doc)

    assert delivery is not None
    assert delivery.sender == "alice"
    assert delivery.inbox_url == "https://remote.example/users/bob/inbox"
    accept = delivery.activity
    assert accept["type"] == "Accept"
    assert accept["actor"] == "https://microblog.test/users/alice"
    assert accept["to"] == "https://remote.example/users/bob"
    assert accept["object"]["id"] == follow_doc["id"]
    assert accept["object"]["type"] == "Follow"
    assert accept["object"]["actor"] == "https://remote.example/users/bob"
    assert accept["object"]["object"] == "https://microblog.test/users/alice"


@pytest.mark.asyncio
async def test_follow_accept_prefers_shared_inbox(session, alice, make_follow_doc, make_remote_actor_doc):
    delivery = await _follow(session, make_follow_doc())
    assert delivery.target_inbox == "https://remote.example/inbox"

    carol = make_remote_actor_doc(username="carol", shared_inbox=False)
    delivery = await _follow(
        session, make_follow_doc(actor=carol, follow_id="https://remote.example/follows/2")
    )
    assert delivery.target_inbox == "https://remote.example/users/carol/inbox"


@pytest.mark.asyncio
async def test_duplicate_follow_is_harmless(session, alice, make_follow_doc):
    first = await _follow(session, make_follow_doc())
    second = await _follow(session, make_follow_doc())

    assert first is not None
    assert second is not None
    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_follow_refreshes_remote_actor(session, alice, make_follow_doc, make_remote_actor_doc):
    from microblog.models.actor import Actor

    await _follow(session, make_follow_doc())
    await _follow(session, make_follow_doc(actor=make_remote_actor_doc(name="Robert")))

    actors = (
        await session.execute(select(Actor).where(Actor.uri == "https://remote.example/users/bob"))
    ).scalars().all()
    assert len(actors) == 1
    assert actors[0].name == "Robert"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "target",
    [
        "https://other.example/users/alice",
        "https://microblog.test/users/alice/followers",
        "https://microblog.test/users/carol",
    ],
)
async def test_follow_of_non_local_actor_is_dropped(session, alice, make_follow_doc, target):
    delivery = await _follow(session, make_follow_doc(target=target))

    assert delivery is None
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_follow_without_resolvable_actor_is_dropped(session, alice, make_follow_doc):
    delivery = await _follow(session, make_follow_doc(actor="https://remote.example/users/bob"))

    assert delivery is None
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_follow_with_explicit_follower(session, alice, make_follow_doc):
    from microblog.federation.activities import RemoteActor, parse_activity
    from microblog.federation.inbox import handle_follow

    follow = parse_activity(make_follow_doc(actor="https://remote.example/users/bob"))
    follower = RemoteActor(
        uri="https://remote.example/users/bob",
        handle="@bob@remote.example",
        inbox_url="https://remote.example/users/bob/inbox",
    )

    delivery = await handle_follow(session, follow, follower)

    assert delivery.target_inbox == "https://remote.example/users/bob/inbox"
    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_follow_with_mismatched_follower_is_dropped(session, alice, make_follow_doc):
    from microblog.federation.activities import RemoteActor, parse_activity
    from microblog.federation.inbox import handle_follow

    follow = parse_activity(make_follow_doc(actor="https://remote.example/users/bob"))
    impostor = RemoteActor(
        uri="https://evil.example/users/mallory",
        handle="@mallory@evil.example",
        inbox_url="https://evil.example/users/mallory/inbox",
    )

    assert await handle_follow(session, follow, impostor) is None
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_follow_from_local_actor_uri_is_dropped(session, alice, make_follow_doc):
    doc = make_follow_doc(
        actor={
            "id": "https://microblog.test/users/alice",
            "inbox": "https://evil.example/inbox",
        }
    )

    assert await _follow(session, doc) is None
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_follow_without_id_gets_unique_accept_id(session, alice, make_follow_doc):
    first_doc = make_follow_doc()
    del first_doc["id"]
    second_doc = make_follow_doc()
    del second_doc["id"]

    first = await _follow(session, first_doc)
    second = await _follow(session, second_doc)

    ids = [first.activity["id"], second.activity["id"]]
    assert all(i.startswith("https://microblog.test/users/alice#accepts/") for i in ids)
    assert "None" not in ids[0]
    assert ids[0] != ids[1]
    assert "id" not in first.activity["object"]


def test_build_accept_keeps_follow_id():
    from microblog.federation.activities import FollowActivity
    from microblog.federation.inbox import build_accept

    follow = FollowActivity(
        id="https://remote.example/follows/1",
        actor_uri="https://remote.example/users/bob",
        object_uri="https://microblog.test/users/alice",
    )

    accept = build_accept("https://microblog.test/users/alice", follow)

    assert accept["id"] == (
        "https://microblog.test/users/alice#accept/https://remote.example/follows/1"
    )


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_undo_follow_removes_edge(session, alice, make_follow_doc, make_undo_doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    await _follow(session, make_follow_doc())
    assert await _edge_count(session) == 1

    removed = await handle_undo(session, parse_activity(make_undo_doc()))

    assert removed is True
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_undo_without_edge_is_noop(session, alice, make_undo_doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    removed = await handle_undo(session, parse_activity(make_undo_doc()))

    assert removed is False
    assert await _edge_count(session) == 0


@pytest.mark.asyncio
async def test_undo_before_follow_then_follow(session, alice, make_follow_doc, make_undo_doc):
    """Undo que chega antes do Follow não falha; o Follow posterior é gravado."""
    await _follow(session, make_undo_doc())
    await _follow(session, make_follow_doc())

    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_undo_of_non_follow_is_ignored(session, alice, make_follow_doc, make_undo_doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    await _follow(session, make_follow_doc())
    like = {
        "id": "https://remote.example/likes/1",
        "type": "Like",
        "actor": "https://remote.example/users/bob",
        "object": "https://microblog.test/users/alice",
    }

    assert await handle_undo(session, parse_activity(make_undo_doc(obj=like))) is False
    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_undo_with_object_reference_is_ignored(session, alice, make_follow_doc, make_undo_doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    await _follow(session, make_follow_doc())
    undo = parse_activity(make_undo_doc(obj="https://remote.example/follows/1"))

    assert await handle_undo(session, undo) is False
    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_undo_by_another_actor_is_ignored(session, alice, make_follow_doc, make_undo_doc):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    await _follow(session, make_follow_doc())
    undo = parse_activity(make_undo_doc(actor="https://evil.example/users/mallory"))

    assert await handle_undo(session, undo) is False
    assert await _edge_count(session) == 1


@pytest.mark.asyncio
async def test_undo_only_removes_matching_follower(
    session, alice, make_follow_doc, make_undo_doc, make_remote_actor_doc
):
    from microblog.federation.activities import parse_activity
    from microblog.federation.inbox import handle_undo

    await _follow(session, make_follow_doc())
    await _follow(
        session,
        make_follow_doc(
            actor=make_remote_actor_doc(username="carol"),
            follow_id="https://remote.example/follows/2",
        ),
    )

    await handle_undo(session, parse_activity(make_undo_doc()))

    assert await _edge_count(session) == 1


# ---------------------------------------------------------------------------
# Outros tipos
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_activity_is_ignored(session, alice):
    delivery = await _follow(
        session,
        {"type": "Announce", "id": "https://remote.example/announces/1", "actor": "x", "object": "y"},
    )

    assert delivery is None
    assert await _edge_count(session) == 0
