# marathon/services/event_hub.py
"""
Service: event_hub.py
- Diffusion Server-Sent Events vers les tableaux de bord (lecture seule).
- Une file asyncio bornée par abonné : un client lent perd ses plus vieux événements,
  il ne bloque jamais la boucle de traitement.
- Snapshots immuables des abonnés pour éviter "set changed size during iteration".
- Admin: stats(), close_all().
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, AsyncIterator, Optional, Set, Tuple

import orjson

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32
KEEPALIVE_SECONDS = 15.0

Event = Tuple[str, Any]
_CLOSE: Event = ("__close__", None)


def format_sse(event: str, data: Any) -> str:
    """Trame SSE : `event: <nom>` + une ligne `data:` JSON compacte."""
    return f"event: {event}\ndata: {orjson.dumps(data).decode()}\n\n"


@dataclass
class EventHub:
    queue_size: int = DEFAULT_QUEUE_SIZE
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    subscribers: Set["asyncio.Queue[Event]"] = field(default_factory=set)
    published: int = 0
    dropped: int = 0

    def subscribe(self) -> "asyncio.Queue[Event]":
        queue: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=self.queue_size)
        with self._lock:
            self.subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[Event]") -> None:
        with self._lock:
            self.subscribers.discard(queue)

    def _snapshot(self) -> list:
        with self._lock:
            return list(self.subscribers)

    def _offer(self, queue: "asyncio.Queue[Event]", item: Event) -> None:
        while True:
            try:
                queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def publish(self, event: str, data: Any) -> int:
        """Dépose l'événement chez chaque abonné ; retourne le nombre d'abonnés servis."""
        conns = self._snapshot()
        for queue in conns:
            self._offer(queue, (event, data))
        self.published += 1
        return len(conns)

    async def stream(
        self,
        queue: "asyncio.Queue[Event]",
        *,
        max_events: Optional[int] = None,
        keepalive: float = KEEPALIVE_SECONDS,
        initial: Optional[Event] = None,
    ) -> AsyncIterator[str]:
        """Générateur de trames SSE ; se désabonne toujours en sortie."""
        sent = 0
        try:
            if initial is not None:
                yield format_sse(*initial)
                sent += 1
            while max_events is None or sent < max_events:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if item is _CLOSE:
                    break
                yield format_sse(*item)
                sent += 1
        finally:
            self.unsubscribe(queue)

    # ---------- admin ----------
    def stats(self) -> dict:
        with self._lock:
            return {
                "subscribers": len(self.subscribers),
                "published": self.published,
                "dropped": self.dropped,
            }

    def close_all(self) -> int:
        conns = self._snapshot()
        for queue in conns:
            self._offer(queue, _CLOSE)
        logger.info("Closing %d event stream(s)", len(conns))
        return len(conns)
