from apkit.models import CryptographicKey, Multikey, Person
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.federation.keys import (
    KEY_FRAGMENTS,
    public_key_multibase,
    public_key_pem,
    get_or_create_key_pairs,
)
from microblog.federation.uris import (
    build_actor_uri,
    build_followers_uri,
    build_inbox_uri,
    build_key_id,
    resolve_local_actor,
)

ACTOR_CONTEXT = [
    "https://www.w3.org/ns/activitystreams",
    "https://w3id.org/security/v1",
    "https://w3id.org/security/multikey/v1",
]


async def build_actor(session: AsyncSession, username: str) -> Person | None:
    """
    Person da conta local, ou None se o username não existir.

    `publicKey` carrega a chave legada (RSA); `assertionMethod` lista todas
    as chaves como Multikey, a legada primeiro.
    """
    actor = await resolve_local_actor(session, username)
    if actor is None:
        return None

    pairs = await get_or_create_key_pairs(session, username)
    actor_url = build_actor_uri(username)
    primary = pairs[0]

    return Person(
        context=ACTOR_CONTEXT,
        id=actor_url,
        name=actor.name,
        preferredUsername=username,
        inbox=build_inbox_uri(username),
        endpoints={"sharedInbox": build_inbox_uri()},
        followers=build_followers_uri(username),
        url=actor_url,
        publicKey=CryptographicKey(
            id=build_key_id(username, KEY_FRAGMENTS[primary.type]),
            owner=actor_url,
            publicKeyPem=public_key_pem(primary.public_key),
        ),
        assertionMethod=[
            Multikey(
                id=build_key_id(username, KEY_FRAGMENTS[pair.type]),
                controller=actor_url,
                publicKeyMultibase=public_key_multibase(pair.public_key),
            )
            for pair in pairs
        ],
        manuallyApprovesFollowers=False,
    )
