"""
Service: scheduler.py
Timers du thread de traitement (broadcast config / classements / kiosque).

- Un seul timer par nom : re-planifier un nom remplace l'ancien.
- `run_due()` est appelé à chaque tick, après le drain de la file entrante : un timer ne
  s'exécute donc jamais en même temps qu'un handler de requête.
- Pas d'accumulation : un timer en retard de plusieurs périodes ne tire qu'une fois,
  puis repart de `now + interval`.
- Intervalle <= 0 : timer désactivé.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Timer:
    name: str
    callback: Callable[[], None]
    next_due: float
    interval: Optional[float] = None  # None = tir unique

    @property
    def repeating(self) -> bool:
        return self.interval is not None


class BroadcastScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.timers: Dict[str, Timer] = {}
        self.stopped = False

    def every(self, name: str, interval: float, callback: Callable[[], None], *, first_in: Optional[float] = None) -> bool:
        """Planifie `callback` toutes les `interval` secondes (premier tir après `first_in`)."""
        if self.stopped:
            return False
        if interval <= 0:
            self.timers.pop(name, None)
            logger.info("Timer %s disabled", name)
            return False
        delay = interval if first_in is None else first_in
        self.timers[name] = Timer(name, callback, self.clock() + delay, interval)
        logger.info("Timer %s every %ss", name, interval)
        return True

    def call_later(self, name: str, delay: float, callback: Callable[[], None]) -> bool:
        if self.stopped:
            return False
        self.timers[name] = Timer(name, callback, self.clock() + max(delay, 0.0))
        return True

    def cancel(self, name: str) -> bool:
        return self.timers.pop(name, None) is not None

    def run_due(self) -> List[str]:
        """Déclenche les timers échus ; retourne leurs noms dans l'ordre de tir."""
        if self.stopped:
            return []
        now = self.clock()
        fired: List[str] = []
        due = sorted((t for t in self.timers.values() if t.next_due <= now), key=lambda t: t.next_due)
        for timer in due:
            if self.timers.get(timer.name) is not timer:
                continue
            if timer.repeating:
                timer.next_due = now + timer.interval
            else:
                del self.timers[timer.name]
            try:
                timer.callback()
            except Exception:
                logger.exception("Timer %s failed", timer.name)
            fired.append(timer.name)
        return fired

    def stop(self) -> None:
        self.stopped = True
        self.timers.clear()
