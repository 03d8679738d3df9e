"""Tests for MQTT telemetry decoding."""
import asyncio
import json

import pytest

from irrigation.mqtt_bridge import MQTTBridge, parse_telemetry


class TestParseTelemetry:

    def test_firmware_payload(self):
        payload = json.dumps({
            'deviceId': 'ESP32-1',
            'timestamp': 1_700_000_000_000,
            'global': {'temp': 21.5, 'pressure': 1012},
            'locals': [{'sensorId': 1, 'soilMoisture': 40, 'temp': 20, 'humidity': 60}],
        })
        reading = parse_telemetry('irrigation/ESP32-1/telemetry', payload)
        assert reading['device_id'] == 'ESP32-1'
        assert reading['timestamp'] == 1_700_000_000_000
        assert reading['global']['temp'] == 21.5
        assert reading['locals'][0]['soilMoisture'] == 40

    def test_wrapped_payload_and_topic_device(self):
        payload = json.dumps({'sensorData': {'global': {'temp': 18}, 'locals': []}})
        reading = parse_telemetry('irrigation/ESP32-7/telemetry', payload)
        assert reading['device_id'] == 'ESP32-7'
        assert reading['timestamp'] is None
        assert reading['locals'] == []

    def test_body_device_id_wins(self):
        payload = json.dumps({'deviceId': 'ESP32-B', 'global': {'temp': 18}})
        assert parse_telemetry('irrigation/ESP32-A/telemetry', payload)['device_id'] == 'ESP32-B'

    @pytest.mark.parametrize('topic,payload', [
        ('irrigation/ESP32-1/telemetry', 'not json'),
        ('irrigation/ESP32-1/telemetry', '[1, 2, 3]'),
        ('irrigation/ESP32-1/telemetry', '{"deviceId": "ESP32-1"}'),
        ('telemetry', '{"global": {"temp": 20}}'),
    ])
    def test_unusable_payloads(self, topic, payload):
        assert parse_telemetry(topic, payload) is None


class TestBridgePipeline:

    def test_malformed_message_is_dropped(self):
        bridge = MQTTBridge()
        assert asyncio.run(bridge.process_pipeline('irrigation/ESP32-1/telemetry', 'garbage')) is False
