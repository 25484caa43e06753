# =======================================================================================
# app/services/publisher.py - Outbound Message Capability
# =======================================================================================
from typing import Any, Dict, Protocol


class Publisher(Protocol):
    """Anything that can put a JSON payload on a topic (the MQTT worker in production)."""

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        ...
