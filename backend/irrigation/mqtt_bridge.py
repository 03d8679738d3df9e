# ==============================================================================
# == backend/irrigation/mqtt_bridge.py - MQTT telemetry to Database Bridge    ==
# ==============================================================================

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .config import settings
from .database import ConfigSessionLocal, DataSessionLocal
from .errors import NotFound
from . import ingestion

logger = logging.getLogger(__name__)


def parse_telemetry(topic: str, raw_payload: str) -> Optional[Dict[str, Any]]:
    """
    Decode a firmware payload published on irrigation/<deviceId>/telemetry.

    The device id in the body wins over the one in the topic. Returns None
    for anything that is not a usable reading.
    """
    try:
        payload = json.loads(raw_payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    parts = topic.split("/")
    topic_device = parts[1] if len(parts) >= 3 else None
    device_id = payload.get("deviceId") or topic_device
    if not device_id:
        return None

    batch = payload.get("sensorData") if isinstance(payload.get("sensorData"), dict) else payload
    global_data = batch.get("global")
    locals_data = batch.get("locals")
    if global_data is None and locals_data is None:
        return None

    return {
        "device_id": str(device_id),
        "timestamp": payload.get("timestamp"),
        "global": global_data if isinstance(global_data, dict) else {},
        "locals": locals_data if isinstance(locals_data, list) else [],
    }


class MQTTBridge:
    def __init__(self):
        logger.info("🛠️ Initializing MQTT Bridge Instance...")

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if settings.MQTT_USER:
            self.client.username_pw_set(settings.MQTT_USER, settings.MQTT_PASSWORD)

        self.client.on_connect = self.on_connect
        self.client.on_message = self.on_message
        self.client.on_disconnect = self.on_disconnect

        self.topic = settings.MQTT_TOPIC
        self.loop = None

    def on_connect(self, client, userdata, flags, rc, properties=None):
        if rc == 0:
            logger.info("✅ MQTT Connected to Broker.")
            client.subscribe(self.topic)
            logger.info(f"   ✓ Subscribed: {self.topic}")
        else:
            logger.error(f"❌ MQTT Connection failed: rc={rc}")

    def on_disconnect(self, client, userdata, flags, rc, properties=None):
        if rc != 0:
            logger.warning(f"⚠️ Unexpected MQTT disconnect: rc={rc}. Reconnecting...")

    def on_message(self, client, userdata, msg):
        """Runs on the paho network thread; hands the message to the app loop."""
        try:
            payload_str = msg.payload.decode('utf-8')
        except UnicodeDecodeError:
            logger.debug(f"Ignored binary payload on {msg.topic}")
            return

        if self.loop and self.loop.is_running():
            asyncio.run_coroutine_threadsafe(
                self.process_pipeline(msg.topic, payload_str),
                self.loop
            )

    def start(self):
        """Called from the FastAPI lifespan."""
        logger.info("🚀 Starting MQTT Bridge inside FastAPI...")

        try:
            self.loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("❌ No running event loop found! Bridge cannot start.")
            return

        try:
            self.client.connect(settings.MQTT_BROKER, settings.MQTT_PORT, 60)
            self.client.loop_start()
            logger.info("✅ MQTT Bridge started successfully.")
        except Exception as e:
            logger.error(f"❌ Failed to start MQTT Bridge: {e}")

    def stop(self):
        logger.info("🛑 Stopping MQTT Bridge...")
        self.client.loop_stop()
        self.client.disconnect()

    async def process_pipeline(self, topic: str, raw_payload: str) -> bool:
        reading = parse_telemetry(topic, raw_payload)
        if reading is None:
            logger.warning(f"Dropped malformed telemetry on {topic}")
            return False

        try:
            async with ConfigSessionLocal() as config_db, DataSessionLocal() as data_db:
                await ingestion.store_reading(
                    config_db, data_db,
                    device_id=reading["device_id"],
                    global_data=reading["global"],
                    locals_data=reading["locals"],
                    timestamp=reading["timestamp"],
                )
            return True
        except NotFound:
            logger.warning(f"Telemetry for unknown device {reading['device_id']} on {topic}")
        except Exception as e:
            logger.error(f"❌ DB Error: {e}", exc_info=True)
        return False
