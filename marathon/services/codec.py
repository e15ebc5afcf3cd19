"""
Service: codec.py
- Encodage / décodage des enveloppes typées vers le payload du fil (JSON UTF-8, orjson).
- Les requêtes leaderboard et les réponses du serveur sont de simples objets JSON :
  `encode_payload` / `decode_payload` les traitent sans schéma d'enveloppe.

Règles:
- Discriminant inconnu -> `UnrecognizedEnvelope` (jamais d'exception).
- Payload non JSON, non objet, discriminant absent, ou champ hors bornes -> `DecodeError`.
"""
from __future__ import annotations

from typing import Any, Dict, Union

import orjson
import pydantic

from marathon.models.envelope import ENVELOPE_TYPES, Envelope, UnrecognizedEnvelope
from marathon.services.errors import DecodeError

AnyEnvelope = Union[Envelope, UnrecognizedEnvelope]

DISCRIMINATOR_KEYS = ("messageType", "kind")


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return orjson.dumps(payload)


def decode_payload(data: Union[bytes, bytearray, str]) -> Dict[str, Any]:
    """Décode un objet JSON ; tout autre contenu est une `DecodeError`."""
    try:
        payload = orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def encode(envelope: AnyEnvelope) -> bytes:
    if isinstance(envelope, UnrecognizedEnvelope):
        body = dict(envelope.payload)
        body["messageType"] = envelope.kind
        body["timestamp"] = envelope.timestamp
        return orjson.dumps(body)
    return orjson.dumps(envelope.model_dump(mode="json", by_alias=True))


def _discriminator(payload: Dict[str, Any]) -> str:
    for key in DISCRIMINATOR_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    raise DecodeError("Missing message discriminator")


def _raw_timestamp(payload: Dict[str, Any]) -> int:
    value = payload.get("timestamp")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        return int(value)
    return 0


def decode(data: Union[bytes, bytearray, str]) -> AnyEnvelope:
    payload = decode_payload(data)
    kind = _discriminator(payload)

    model = ENVELOPE_TYPES.get(kind)
    if model is None:
        return UnrecognizedEnvelope(kind=kind, timestamp=_raw_timestamp(payload), payload=payload)

    fields = {k: v for k, v in payload.items() if k not in DISCRIMINATOR_KEYS}
    fields["messageType"] = kind
    try:
        return model.model_validate(fields)
    except pydantic.ValidationError as exc:
        raise DecodeError(f"Invalid {kind} payload: {exc.error_count()} error(s)") from exc
