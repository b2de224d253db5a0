"""MQTT mirror publishing committed telemetry samples."""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import TYPE_CHECKING, Any, Callable, Optional, Set

from gmqtt import Client as MQTTClient

from meter_console.core.config import Settings, settings
from meter_console.core.logging_config import get_logger
from meter_console.schemas import TelemetrySample

if TYPE_CHECKING:
    from meter_console.services.telemetry_store import TelemetryStore

logger = get_logger(__name__)


class MQTTClientManager:
    """Manages MQTT connection and publishing using gmqtt."""

    def __init__(self, config: Settings = settings) -> None:
        self._client: Optional[MQTTClient] = None
        self._enabled = False
        self._host = config.MQTT_BROKER_HOST
        self._port = config.MQTT_BROKER_PORT

        if not config.MQTT_BROKER_HOST:
            logger.info(
                "mqtt_disabled",
                reason="MQTT_BROKER_HOST not set",
                message="MQTT telemetry mirror disabled",
            )
            return

        self._enabled = True
        self._topic_prefix = config.MQTT_TOPIC_PREFIX.rstrip("/")

        client_id = f"meter-console-{uuid.uuid4().hex[:8]}"
        self._client = MQTTClient(client_id)

        if config.MQTT_USERNAME:
            self._client.set_auth_credentials(config.MQTT_USERNAME, config.MQTT_PASSWORD)

        logger.info(
            "mqtt_configured",
            host=self._host,
            port=self._port,
            client_id=client_id,
            topic_prefix=self._topic_prefix,
            message="MQTT client configured",
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_connected(self) -> bool:
        return bool(self._client is not None and self._client.is_connected)

    async def start(self) -> None:
        """Start the MQTT client (connect)."""
        if not self._enabled or not self._client:
            return

        try:
            await self._client.connect(self._host, self._port)
            logger.info(
                "mqtt_connected",
                host=self._host,
                port=self._port,
                message="Connected to MQTT Broker",
            )
        except Exception as e:
            # The console keeps running without the mirror
            logger.error(
                "mqtt_connect_failed",
                host=self._host,
                port=self._port,
                error=str(e),
                error_type=type(e).__name__,
                message="Failed to connect to MQTT Broker",
                exc_info=True,
            )

    async def stop(self) -> None:
        """Stop the MQTT client (disconnect)."""
        if self._client and self._client.is_connected:
            try:
                await self._client.disconnect()
                logger.info(
                    "mqtt_disconnected",
                    host=self._host,
                    port=self._port,
                    message="Disconnected from MQTT Broker",
                )
            except Exception as e:
                logger.error(
                    "mqtt_disconnect_error",
                    host=self._host,
                    port=self._port,
                    error=str(e),
                    error_type=type(e).__name__,
                    message="Error disconnecting from MQTT",
                    exc_info=True,
                )

    async def publish(self, topic_suffix: str, payload: Any) -> None:
        """Publish JSON-encoded payload to {prefix}/{topic_suffix}."""
        if not self._enabled or not self._client:
            return

        if not self._client.is_connected:
            return

        topic = f"{self._topic_prefix}/{topic_suffix}"

        try:
            message = json.dumps(payload, default=str)
            self._client.publish(topic, message, qos=0)
            logger.debug(
                "mqtt_published",
                topic=topic,
                payload_size=len(message),
                message="Published to MQTT",
            )
        except Exception as e:
            logger.error(
                "mqtt_publish_error",
                topic=topic,
                error=str(e),
                error_type=type(e).__name__,
                message="Failed to publish to MQTT",
                exc_info=True,
            )


class TelemetryMirror:
    """Store subscriber forwarding each new sample to MQTT (fire and forget)."""

    TOPIC_SUFFIX = "telemetry"

    def __init__(self, store: "TelemetryStore", manager: MQTTClientManager) -> None:
        self._store = store
        self._manager = manager
        self._last_published: Optional[TelemetrySample] = None
        self._pending: Set[asyncio.Task] = set()

    def attach(self) -> Callable[[], None]:
        return self._store.subscribe(self._on_change)

    def _on_change(self) -> None:
        if not self._manager.enabled:
            return
        sample = self._store.get_sample()
        if sample is None or sample == self._last_published:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("mqtt_mirror_no_loop", message="No running loop, sample not mirrored")
            return
        self._last_published = sample
        task = loop.create_task(
            self._manager.publish(self.TOPIC_SUFFIX, sample.model_dump(by_alias=True))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self, timeout: float = 5.0) -> int:
        """Wait for queued publishes; returns how many were pending."""
        pending = list(self._pending)
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        return len(pending)


mqtt_manager = MQTTClientManager()
