"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centraliser les paramètres du backend (HTTP, broker MQTT, chemins, cadence de la boucle).
- Les valeurs par défaut conviennent pour un broker local (mosquitto sur localhost:1883).
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers importent `from marathon.config.settings import settings`.
- La configuration *de jeu* (modes, distances, intervalles de broadcast) vit dans
  `config.json` et est chargée par `marathon.config.game_config`.

Exemples de `.env`
------------------
MQTT_BROKER_URL="mqtt://192.168.1.20:1883"
MQTT_USERNAME="marathon"
MQTT_PASSWORD="mettre-une-valeur-secrète"
DATA_DIR="/var/opt/marathon/data"
ADMIN_TOKEN="changeme-admin"
KIOSK_ENABLED=false
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
import os


class Settings(BaseSettings):
    # Nom du service (apparaît dans /health)
    APP_NAME: str = "Marathon Leaderboard Server"
    # Bind réseau (FastAPI / Uvicorn)
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Jeton admin pour les routes de maintenance (suppression / purge / reload)
    # ⚠️ Remplacez en production via .env
    ADMIN_TOKEN: str = "changeme-admin"

    # Répertoire des fichiers persistés (leaderboards JSON, config.json)
    # Par défaut: <repo>/marathon/data
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
    # Vide -> <DATA_DIR>/config.json
    GAME_CONFIG_PATH: str = ""
    DEFAULT_GAME_MODE: str = "rowing"

    # Broker MQTT (mqtts:// active TLS)
    MQTT_ENABLED: bool = True
    MQTT_BROKER_URL: str = "mqtt://localhost:1883"
    # Vide -> identifiant généré "leaderboard-server-<hex8>"
    MQTT_CLIENT_ID: str = ""
    MQTT_USERNAME: str = ""
    MQTT_PASSWORD: str = ""
    MQTT_KEEPALIVE: int = 60
    MQTT_RECONNECT_SECONDS: float = 5.0

    # Boucle de traitement (drain de la file entrante + timers)
    TICK_SECONDS: float = 0.05

    # Flux kiosque "MarathonFM"
    KIOSK_ENABLED: bool = True
    KIOSK_BROADCAST_SECONDS: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def game_config_path(self) -> str:
        return self.GAME_CONFIG_PATH or os.path.join(self.DATA_DIR, "config.json")


# Instance unique importable partout : `settings`
settings = Settings()
