"""
workers/delivery_worker.py

Worker assíncrono que entrega as atividades de saída enfileiradas pelo inbox.

Fluxo:
1. Consome entregas da fila (delivery_queue)
2. Carrega a chave principal (RSA) da conta que envia
3. Assina com draft-cavage e entrega no shared inbox do destinatário,
   ou no inbox dele quando não houver shared inbox

Retry e backoff ficam fora deste worker: falhas são logadas e a entrega
é descartada.
"""

import asyncio
import logging

from apkit.client.asyncio.client import ActivityPubClient
from apkit.server.types import ActorKey
from cryptography.hazmat.primitives.asymmetric import rsa as rsa_module

from microblog import database
from microblog.federation.keys import get_keys_for_actor
from microblog.services.queue import OutboundDelivery, delivery_queue

log = logging.getLogger(__name__)


async def load_signing_key(sender: str) -> ActorKey | None:
    """Chave RSA da conta `sender`, usada como chave principal de assinatura."""
    async with database.async_session_factory() as session:
        async with session.begin():
            keys = await get_keys_for_actor(session, sender)

    for key in keys:
        if isinstance(key.private_key, rsa_module.RSAPrivateKey):
            return key
    return None


async def deliver(delivery: OutboundDelivery) -> None:
    try:
        key = await load_signing_key(delivery.sender)
    except Exception as e:
        log.error(f"Chaves de {delivery.sender} indisponíveis: {e}", exc_info=True)
        return

    if key is None:
        log.error(
            f"Chave privada RSA de {delivery.sender} não encontrada, "
            "não é possível entregar"
        )
        return

    inbox = delivery.target_inbox
    log.info(f"Enviando {delivery.activity.get('type')} para {inbox} com key_id={key.key_id}")
    try:
        async with ActivityPubClient() as client:
            async with client.post(
                    inbox,
                    json=delivery.activity,
                    signatures=[key],
                    sign_with=["draft-cavage"],
            ) as response:
                body = await response.text()
                log.info(f"Status: {response.status} — Resposta: {body[:500]}")
    except Exception as e:
        log.error(f"Erro ao entregar em {inbox}: {e}", exc_info=True)


async def run_worker() -> None:
    log.info("Worker de entrega iniciado")
    while True:
        try:
            delivery = await asyncio.wait_for(delivery_queue.get(), timeout=5.0)
            await deliver(delivery)
            delivery_queue.task_done()
        except asyncio.TimeoutError:
            continue
        except Exception as e:
            log.error(f"Erro no worker: {e}", exc_info=True)
