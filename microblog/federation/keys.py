"""
microblog/federation/keys.py

Cofre de chaves da conta local.

Cada conta mantém dois pares de chaves em paralelo:
- RSASSA-PKCS1-v1_5 — formato legado, exposto como `publicKey` (#main-key)
- Ed25519           — formato moderno, exposto junto no `assertionMethod`

Os pares são gerados sob demanda na primeira vez que o actor é servido e
guardados como JSON Web Key (RFC 7517). A ordem de `KEY_TYPES` importa:
a chave legada vem sempre primeiro.
"""

import json
import logging
from dataclasses import dataclass

from apkit.server.types import ActorKey
from authlib.jose import JsonWebKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa
from multiformats import multibase, multicodec
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microblog.database import insert_for
from microblog.federation.uris import build_key_id
from microblog.models.key import Key
from microblog.models.user import User

log = logging.getLogger(__name__)

RSA_KEY_TYPE = "RSASSA-PKCS1-v1_5"
ED25519_KEY_TYPE = "Ed25519"
KEY_TYPES = (RSA_KEY_TYPE, ED25519_KEY_TYPE)

# Fragmento do key id por algoritmo, na mesma ordem de KEY_TYPES
KEY_FRAGMENTS = {
    RSA_KEY_TYPE: "main-key",
    ED25519_KEY_TYPE: "key-2",
}


class KeyMaterialError(Exception):
    """Material de chave guardado no banco não pôde ser decodificado."""


@dataclass(frozen=True)
class KeyPair:
    type: str
    private_key: rsa.RSAPrivateKey | ed25519.Ed25519PrivateKey
    public_key: rsa.RSAPublicKey | ed25519.Ed25519PublicKey
    private_jwk: str
    public_jwk: str


# ---------------------------------------------------------------------------
# JWK
# ---------------------------------------------------------------------------


def _jwk_kty(key) -> str:
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return "RSA"
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return "OKP"
    raise TypeError(f"Tipo de chave não suportado: {type(key).__name__}")


def export_jwk(key) -> dict:
    """Exporta uma chave RSA ou Ed25519 (pública ou privada) como JWK."""
    kty = _jwk_kty(key)
    is_private = isinstance(key, (rsa.RSAPrivateKey, ed25519.Ed25519PrivateKey))
    params = {"key_ops": ["sign" if is_private else "verify"], "ext": True}
    if kty == "RSA":
        params["alg"] = "RS256"
    return JsonWebKey.import_key(key, {"kty": kty}).as_dict(is_private=is_private, **params)


def import_jwk(jwk: dict, kind: str):
    """
    Importa um JWK como chave `"private"` ou `"public"`.
    Levanta KeyMaterialError se o JWK estiver incompleto ou inválido.
    """
    kty = jwk.get("kty") if isinstance(jwk, dict) else None
    if kty not in ("RSA", "OKP") or (kty == "OKP" and jwk.get("crv") != "Ed25519"):
        raise KeyMaterialError(f"Tipo de JWK não suportado: {kty!r}")

    try:
        key = JsonWebKey.import_key(jwk)
        raw = key.get_private_key() if kind == "private" else key.get_public_key()
    except (KeyError, TypeError, ValueError) as e:
        raise KeyMaterialError(f"JWK inválido: {e}") from e

    if raw is None:
        raise KeyMaterialError(f"JWK sem material {kind}")
    return raw


# ---------------------------------------------------------------------------
# Representações públicas
# ---------------------------------------------------------------------------


def public_key_pem(public_key) -> str:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


def public_key_multibase(public_key) -> str:
    """
    `publicKeyMultibase` de um Multikey (FEP-521a): prefixo multicodec
    seguido da chave, codificado em base58btc.
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        raw = public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.PKCS1,
        )
        return multibase.encode(multicodec.wrap("rsa-pub", raw), "base58btc")
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        raw = public_key.public_bytes_raw()
        return multibase.encode(multicodec.wrap("ed25519-pub", raw), "base58btc")
    raise TypeError(f"Tipo de chave não suportado: {type(public_key).__name__}")


# ---------------------------------------------------------------------------
# Cofre
# ---------------------------------------------------------------------------


def generate_private_key(key_type: str):
    if key_type == RSA_KEY_TYPE:
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if key_type == ED25519_KEY_TYPE:
        return ed25519.Ed25519PrivateKey.generate()
    raise ValueError(f"Algoritmo desconhecido: {key_type!r}")


def _decode_row(row: Key) -> KeyPair:
    try:
        private_jwk = json.loads(row.private_key)
        public_jwk = json.loads(row.public_key)
    except (TypeError, ValueError) as e:
        raise KeyMaterialError(
            f"Chave {row.type} do usuário {row.user_id} corrompida: {e}"
        ) from e

    return KeyPair(
        type=row.type,
        private_key=import_jwk(private_jwk, "private"),
        public_key=import_jwk(public_jwk, "public"),
        private_jwk=row.private_key,
        public_jwk=row.public_key,
    )


async def _load_rows(session: AsyncSession, user_id: int) -> dict[str, Key]:
    result = await session.execute(select(Key).where(Key.user_id == user_id))
    return {row.type: row for row in result.scalars()}


async def get_or_create_key_pairs(session: AsyncSession, username: str) -> list[KeyPair]:
    """
    Retorna os pares de chaves da conta, um por algoritmo, na ordem de
    `KEY_TYPES`. Gera e persiste os que ainda não existem.

    A inserção ignora conflitos em (user_id, type) e o resultado é sempre
    relido do banco: se duas requisições criarem o mesmo par ao mesmo tempo,
    ambas devolvem o par que ficou persistido.

    Retorna lista vazia para username desconhecido.
    """
    user = (
        await session.execute(select(User).where(User.username == username))
    ).scalar_one_or_none()
    if user is None:
        return []

    rows = await _load_rows(session, user.id)
    missing = [key_type for key_type in KEY_TYPES if key_type not in rows]

    for key_type in missing:
        log.info(f"Usuário {username} não tem chave {key_type}; criando uma nova")
        private_key = generate_private_key(key_type)
        stmt = (
            insert_for(session, Key)
            .values(
                user_id=user.id,
                type=key_type,
                private_key=json.dumps(export_jwk(private_key)),
                public_key=json.dumps(export_jwk(private_key.public_key())),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "type"])
        )
        await session.execute(stmt)

    if missing:
        await session.flush()
        rows = await _load_rows(session, user.id)

    return [_decode_row(rows[key_type]) for key_type in KEY_TYPES]


async def get_keys_for_actor(session: AsyncSession, identifier: str) -> list[ActorKey]:
    """
    Chaves de assinatura no formato do apkit para atividades de saída.
    Recebe o `identifier` (username na URL); a chave legada vem primeiro.
    """
    pairs = await get_or_create_key_pairs(session, identifier)
    return [
        ActorKey(
            key_id=build_key_id(identifier, KEY_FRAGMENTS[pair.type]),
            private_key=pair.private_key,
        )
        for pair in pairs
    ]
