# =======================================================================================
# app/workers/mqtt_worker.py - Background MQTT Worker
# =======================================================================================
import json
import logging
import threading
import uuid
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from ..config import config
from ..models.enums import INBOUND_TOPICS

logger = logging.getLogger(__name__)


class MqttWorker:
    """
    Broker connection for the backend.

    Inbound messages are decoded and handed to the attached router on the
    paho network thread. ``publish`` is safe to call from any thread.
    """

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.router = None
        self.connected = False
        self.running = False

    def attach(self, router) -> None:
        self.router = router

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            return

        client_id = f"{config.MQTT_CLIENT_PREFIX}{uuid.uuid4().hex[:8]}"
        websockets = config.MQTT_TRANSPORT in ("ws", "websockets")
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            transport="websockets" if websockets else "tcp",
        )
        if websockets:
            self.client.ws_set_options(path=config.MQTT_WS_PATH)
        if config.MQTT_USERNAME:
            self.client.username_pw_set(config.MQTT_USERNAME, config.MQTT_PASSWORD)
        if config.MQTT_USE_TLS:
            self.client.tls_set()

        self.client.on_connect = self.on_connect
        self.client.on_disconnect = self.on_disconnect
        self.client.on_message = self.on_message
        self.client.reconnect_delay_set(
            min_delay=config.MQTT_RECONNECT_SECONDS, max_delay=config.MQTT_RECONNECT_SECONDS,
        )

        logger.info("Connecting to MQTT broker %s:%s ...", config.MQTT_BROKER_HOST, config.MQTT_BROKER_PORT)
        # connect_async lets loop_start keep retrying when the broker is down at boot
        self.client.connect_async(config.MQTT_BROKER_HOST, config.MQTT_BROKER_PORT, config.MQTT_KEEPALIVE)
        self.client.loop_start()
        self.running = True

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self.client.disconnect()
        self.client.loop_stop()
        self.connected = False
        logger.info("MQTT worker stopped")

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("MQTT connection refused: %s", reason_code)
            return

        self.connected = True
        logger.info("Connected to MQTT broker")
        for topic in INBOUND_TOPICS:
            client.subscribe(topic, qos=1)
        logger.info("Subscribed to %d topics", len(INBOUND_TOPICS))

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self.connected = False
        if self.running:
            logger.warning("MQTT disconnected (%s); reconnecting in %ss",
                           reason_code, config.MQTT_RECONNECT_SECONDS)

    def on_message(self, client, userdata, msg):
        try:
            payload = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Parse error on %s: %s", msg.topic, e)
            return

        if self.router is None:
            logger.debug("No router attached; dropping message on %s", msg.topic)
            return
        self.router.dispatch(msg.topic, payload)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.client is None:
            logger.debug("MQTT not started; dropping publish to %s", topic)
            return
        info = self.client.publish(topic, json.dumps(payload, default=str), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning("Publish to %s not queued (rc=%s)", topic, info.rc)
        else:
            logger.debug("MQTT -> [%s]: %s", topic, payload)


class OfflineSweeper:
    """Periodically reports devices whose heartbeats stopped."""

    def __init__(self, router, interval_seconds: Optional[int] = None):
        self.router = router
        self.interval = interval_seconds or config.OFFLINE_SWEEP_SECONDS
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="offline-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run_loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.router.sweep_offline_devices()
            except Exception:
                logger.exception("Offline sweep failed")
