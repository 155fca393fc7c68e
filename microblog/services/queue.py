"""
microblog/services/queue.py

Fila em memória das entregas de saída, consumida por
workers/delivery_worker.py.
"""

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class OutboundDelivery:
    # username da conta local que assina a entrega
    sender: str
    inbox_url: str
    activity: dict
    shared_inbox_url: str | None = None

    @property
    def target_inbox(self) -> str:
        return self.shared_inbox_url or self.inbox_url


delivery_queue: asyncio.Queue = asyncio.Queue()
