"""
Service: runtime.py
Rôle :
- Assembler, une seule fois au démarrage, la connexion broker, les classements, les services
  (leaderboard + kiosque), le hub SSE et les timers de diffusion.
- Porter la boucle de traitement : `tick()` vide la file entrante puis déclenche les timers
  échus ; `run()` répète `tick()` sur la boucle asyncio.

Invariants :
- Tous les handlers, timers et opérations admin s'exécutent sur le même thread (celui de la
  boucle asyncio) : aucun verrou autour des classements.
- Diffusion périodique hors connexion -> ignorée sans bruit (la publication serait refusée).
- Arrêt : plus aucun timer, flush de tous les classements, fermeture de la session broker.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from marathon.config.game_config import load_game_config
from marathon.models.game import GameConfig
from marathon.services.event_hub import EventHub
from marathon.services.kiosk_service import KioskService
from marathon.services.leaderboard_service import LeaderboardService
from marathon.services.leaderboard_store import LeaderboardRegistry, LeaderboardStore, kiosk_store
from marathon.services.mqtt_manager import ClientFactory, InboundMessage, MQTTManager
from marathon.services.scheduler import BroadcastScheduler
from marathon.services.topics import Channel, TopicRouter

logger = logging.getLogger(__name__)

TIMER_CONFIG = "config-broadcast"
TIMER_LEADERBOARD = "leaderboard-broadcast"
TIMER_KIOSK = "kiosk-top10"
TIMER_ON_CONNECT = "on-connect-broadcast"

KIOSK_CHANNELS = (Channel.KIOSK_WRITE, Channel.KIOSK_CHECKNAME)


class ServiceRuntime:
    def __init__(
        self,
        connection: MQTTManager,
        config: GameConfig,
        data_dir: str | Path,
        *,
        router: Optional[TopicRouter] = None,
        default_mode: str = "rowing",
        kiosk_enabled: bool = True,
        kiosk_interval: float = 5.0,
        tick_seconds: float = 0.05,
        config_path: Optional[str | Path] = None,
        scheduler: Optional[BroadcastScheduler] = None,
        hub: Optional[EventHub] = None,
    ) -> None:
        self.connection = connection
        self.config = config
        self.data_dir = Path(data_dir)
        self.router = router or TopicRouter()
        self.default_mode = default_mode
        self.kiosk_interval = kiosk_interval
        self.tick_seconds = tick_seconds
        self.config_path = Path(config_path) if config_path else None
        self.scheduler = scheduler or BroadcastScheduler()
        self.hub = hub or EventHub()

        self.registry = LeaderboardRegistry(self.data_dir, config.modes, legacy_mode=default_mode)
        self.leaderboards = LeaderboardService(
            connection,
            self.registry,
            config,
            router=self.router,
            default_mode=default_mode,
            on_change=self.notify_leaderboards,
        )
        self.kiosk_store: Optional[LeaderboardStore] = kiosk_store(self.data_dir) if kiosk_enabled else None
        self.kiosk: Optional[KioskService] = None
        if self.kiosk_store is not None:
            self.kiosk = KioskService(connection, self.kiosk_store, router=self.router, on_change=self.notify_kiosk)

        self.started = False
        self.stopped = False
        connection.on_connected = self._on_connected
        connection.on_disconnected = self._on_disconnected
        connection.on_connection_failed = self._on_connection_failed

    @classmethod
    def from_settings(cls, settings: Any, *, client_factory: Optional[ClientFactory] = None) -> "ServiceRuntime":
        config = load_game_config(settings.game_config_path)
        connection = MQTTManager(
            settings.MQTT_BROKER_URL,
            client_id=settings.MQTT_CLIENT_ID,
            username=settings.MQTT_USERNAME,
            password=settings.MQTT_PASSWORD,
            keepalive=settings.MQTT_KEEPALIVE,
            reconnect_seconds=settings.MQTT_RECONNECT_SECONDS,
            client_factory=client_factory,
        )
        return cls(
            connection,
            config,
            settings.DATA_DIR,
            default_mode=settings.DEFAULT_GAME_MODE,
            kiosk_enabled=settings.KIOSK_ENABLED,
            kiosk_interval=settings.KIOSK_BROADCAST_SECONDS,
            tick_seconds=settings.TICK_SECONDS,
            config_path=settings.game_config_path,
        )

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------
    def start(self, *, connect: bool = True) -> None:
        if self.started:
            return
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.registry.load()
        if self.kiosk_store is not None:
            self.kiosk_store.load()

        for topic in self.subscriptions():
            self.connection.subscribe(topic)
        self._schedule_broadcasts()
        self.started = True
        logger.info("Runtime started (modes: %s, kiosk: %s)", ", ".join(self.registry.modes), self.kiosk is not None)
        if connect:
            self.connection.connect()

    def subscriptions(self) -> list[str]:
        topics = self.router.server_subscriptions()
        if self.kiosk is not None:
            topics += self.router.kiosk_subscriptions()
        return topics

    def _schedule_broadcasts(self) -> None:
        policy = self.config.broadcast
        self.scheduler.every(TIMER_CONFIG, policy.config_interval_seconds, self._periodic_config)
        self.scheduler.every(TIMER_LEADERBOARD, policy.leaderboard_interval_seconds, self._periodic_leaderboards)
        if self.kiosk is not None:
            self.scheduler.every(TIMER_KIOSK, self.kiosk_interval, self._periodic_kiosk)

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self.scheduler.stop()
        logger.info("Shutting down: flushing leaderboards")
        self.registry.flush_all()
        if self.kiosk_store is not None:
            self.kiosk_store.save()
        self.connection.disconnect()
        self.hub.close_all()

    # ------------------------------------------------------------------
    # Boucle de traitement
    # ------------------------------------------------------------------
    def handle_message(self, message: InboundMessage) -> Optional[Dict[str, Any]]:
        route = self.router.resolve(message.topic)
        if route is None:
            logger.debug("Ignoring message on unknown topic", extra={"topic": message.topic})
            return None
        if route.channel in self.leaderboards.channels:
            return self.leaderboards.handle(route, message)
        if self.kiosk is not None and route.channel in KIOSK_CHANNELS:
            return self.kiosk.handle(route, message)
        return None

    def tick(self) -> int:
        processed = self.connection.drain(self.handle_message)
        self.scheduler.run_due()
        return processed

    async def run(self) -> None:
        while not self.stopped:
            self.tick()
            await asyncio.sleep(self.tick_seconds)

    # ------------------------------------------------------------------
    # Événements de connexion (thread de traitement)
    # ------------------------------------------------------------------
    def _on_connected(self) -> None:
        policy = self.config.broadcast
        if policy.on_connect:
            self.scheduler.call_later(TIMER_ON_CONNECT, policy.settle_seconds, self.broadcast_all)

    def _on_disconnected(self) -> None:
        self.scheduler.cancel(TIMER_ON_CONNECT)

    def _on_connection_failed(self, reason: str) -> None:
        logger.warning("Broker unavailable, retrying every %ss (%s)", self.connection.reconnect_seconds, reason)

    # ------------------------------------------------------------------
    # Diffusions
    # ------------------------------------------------------------------
    def _when_connected(self, action: Callable[[], Any]) -> None:
        if self.connection.is_connected:
            action()

    def _periodic_config(self) -> None:
        self._when_connected(self.leaderboards.broadcast_config)

    def _periodic_leaderboards(self) -> None:
        self._when_connected(self.leaderboards.broadcast_leaderboards)
        self.notify_leaderboards()

    def _periodic_kiosk(self) -> None:
        if self.kiosk is not None:
            self._when_connected(self.kiosk.broadcast_top10)

    def broadcast_all(self) -> None:
        self._periodic_config()
        self._periodic_leaderboards()
        self._periodic_kiosk()

    def notify_leaderboards(self) -> None:
        self.hub.publish("leaderboard", self.leaderboards.leaderboard_snapshot())

    def notify_kiosk(self) -> None:
        if self.kiosk is not None:
            self.hub.publish("kiosk", self.kiosk.top10_message())

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def delete_entry(self, mode: str, username: str) -> bool:
        deleted = self.registry.delete(mode, username)
        if deleted:
            logger.info("Deleted %s from %s leaderboard", username, mode)
            self.notify_leaderboards()
        return deleted

    def clear_mode(self, mode: str) -> int:
        count = self.registry.clear(mode)
        logger.info("Cleared %s leaderboard (%d entries)", mode, count)
        self.notify_leaderboards()
        return count

    def delete_kiosk_entry(self, username: str) -> bool:
        if self.kiosk_store is None:
            return False
        deleted = self.kiosk_store.delete(username)
        if deleted:
            self.notify_kiosk()
        return deleted

    def clear_kiosk(self) -> int:
        if self.kiosk_store is None:
            return 0
        count = self.kiosk_store.clear()
        self.notify_kiosk()
        return count

    def reload_config(self) -> GameConfig:
        """
        Relit config.json et remplace la config entière. Les classements sont reconstruits
        pour la nouvelle liste de modes (les fichiers existants sont relus, jamais effacés).
        """
        path = self.config_path or self.data_dir / "config.json"
        config = load_game_config(path)
        self.registry.flush_all()
        registry = LeaderboardRegistry(self.data_dir, config.modes, legacy_mode=self.default_mode)
        registry.load()

        self.config = config
        self.registry = registry
        self.leaderboards.config = config
        self.leaderboards.registry = registry
        if self.started and not self.stopped:
            self._schedule_broadcasts()
            self._periodic_config()
        logger.info("Game configuration reloaded (%s)", ", ".join(config.modes))
        return config

    def stats(self) -> Dict[str, Any]:
        stores: Dict[str, int] = self.registry.counts()
        if self.kiosk_store is not None:
            stores["kiosk"] = len(self.kiosk_store)
        return {
            "mqtt": {"state": self.connection.state.value, "broker": str(self.connection.address)},
            "stores": stores,
            "events": self.hub.stats(),
        }
