"""Tests for the threshold rules and chat-reply triage."""
import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from irrigation.assistant import TextGenerator
from irrigation.errors import Internal, InvalidInput, Unauthorized
from irrigation.models.config import Zone
from irrigation.models.data import SensorReading
from irrigation.suggestion_engine import (
    CHAT_ZONE_NAME,
    acknowledge,
    as_number,
    chat_suggestion_id,
    evaluate,
    evaluate_zone,
    evaluate_zones,
    latest_by_zone,
    synthesize_from_reply,
)


def _zone(zone_id, name='Zone'):
    return Zone(id=zone_id, name=name, owner_user_id=1, device_id='ESP32-1',
                plant_type='tomato', soil_type='loam')


def _reading(zone_id, soil_moisture=None, temp=None, timestamp=1_700_000_000, reading_id=None):
    local = {} if soil_moisture is None else {'soilMoisture': soil_moisture}
    glob = {} if temp is None else {'temp': temp}
    return SensorReading(id=reading_id, zone_id=zone_id, device_id='ESP32-1',
                         timestamp=timestamp, global_data=glob, locals=[local])


class TestEvaluateZone:
    """Rule evaluation on a single zone."""

    def test_low_moisture_only(self):
        suggestions = evaluate_zone(_zone(7, 'A'), _reading(7, soil_moisture=15, temp=22))
        assert len(suggestions) == 1
        s = suggestions[0]
        assert s.id == '7_low_moisture'
        assert s.type == 'critical'
        assert s.priority == 'high'
        assert s.action == 'START_IRRIGATION'
        assert s.zone_name == 'A'
        assert '15%' in s.message

    def test_high_moisture_and_high_temp(self):
        suggestions = evaluate_zone(_zone(8, 'B'), _reading(8, soil_moisture=90, temp=40))
        assert [s.id for s in suggestions] == ['8_high_moisture', '8_high_temp']
        assert all(s.type == 'warning' and s.priority == 'medium' for s in suggestions)
        assert suggestions[0].action == 'STOP_IRRIGATION'
        assert suggestions[1].action is None

    def test_no_reading_yields_only_no_data(self):
        suggestions = evaluate_zone(_zone(9, 'C'), None)
        assert len(suggestions) == 1
        assert suggestions[0].id == '9_no_data'
        assert suggestions[0].type == 'warning'
        assert suggestions[0].priority == 'medium'

    def test_normal_conditions_yield_nothing(self):
        assert evaluate_zone(_zone(1), _reading(1, soil_moisture=50, temp=22)) == []

    def test_low_temperature_is_info(self):
        suggestions = evaluate_zone(_zone(1), _reading(1, soil_moisture=50, temp=2))
        assert [(s.id, s.type, s.priority) for s in suggestions] == [('1_low_temp', 'info', 'low')]

    @pytest.mark.parametrize('moisture,expected', [
        (20, []),
        (80, []),
        (19.9, ['1_low_moisture']),
        (80.1, ['1_high_moisture']),
    ])
    def test_moisture_bounds_are_strict(self, moisture, expected):
        ids = [s.id for s in evaluate_zone(_zone(1), _reading(1, soil_moisture=moisture, temp=20))]
        assert ids == expected

    @pytest.mark.parametrize('temp,expected', [
        (35, []),
        (5, []),
        (35.5, ['1_high_temp']),
        (4.9, ['1_low_temp']),
    ])
    def test_temperature_bounds_are_strict(self, temp, expected):
        ids = [s.id for s in evaluate_zone(_zone(1), _reading(1, soil_moisture=50, temp=temp))]
        assert ids == expected

    def test_missing_fields_count_as_zero(self):
        """An empty reading reads as 0% moisture and 0°C."""
        ids = [s.id for s in evaluate_zone(_zone(3), _reading(3))]
        assert ids == ['3_low_moisture', '3_low_temp']

    def test_unparsable_values_count_as_zero(self):
        assert as_number('n/a') == 0.0
        assert as_number(None) == 0.0
        assert as_number(True) == 0.0
        assert as_number('42.5') == 42.5

    def test_no_suggestion_is_born_acknowledged(self):
        suggestions = evaluate_zone(_zone(1), _reading(1, soil_moisture=10, temp=40))
        assert suggestions
        assert not any(s.acknowledged for s in suggestions)


class TestEvaluateZones:
    """Multi-zone evaluation and latest-reading selection."""

    def test_scenarios_across_zones(self):
        zones = [_zone(1, 'A'), _zone(2, 'B'), _zone(3, 'C')]
        latest = {
            1: _reading(1, soil_moisture=15, temp=22),
            2: _reading(2, soil_moisture=90, temp=40),
        }
        ids = [s.id for s in evaluate_zones(zones, latest)]
        assert ids == ['1_low_moisture', '2_high_moisture', '2_high_temp', '3_no_data']

    def test_latest_by_zone_keeps_first_seen(self):
        newest_first = [
            _reading(1, soil_moisture=10, timestamp=300, reading_id=3),
            _reading(2, soil_moisture=50, timestamp=200, reading_id=2),
            _reading(1, soil_moisture=60, timestamp=100, reading_id=1),
        ]
        latest = latest_by_zone(newest_first)
        assert latest[1].id == 3
        assert latest[2].id == 2

    def test_only_latest_reading_counts(self):
        readings = [
            _reading(1, soil_moisture=50, temp=20, timestamp=300),
            _reading(1, soil_moisture=5, temp=20, timestamp=100),
        ]
        assert evaluate_zones([_zone(1)], latest_by_zone(readings)) == []


class TestChatSynthesis:
    """Keyword triage of assistant replies."""

    def test_calm_reply_yields_nothing(self):
        assert synthesize_from_reply('Tout va bien', user_id=1, now=1_700_000_000) == []

    def test_urgent_reply_yields_one_critical(self):
        suggestions = synthesize_from_reply('Action urgente requise', user_id=1, now=1_700_000_000)
        assert len(suggestions) == 1
        s = suggestions[0]
        assert s.type == 'critical'
        assert s.zone_name == CHAT_ZONE_NAME == 'Multiple'
        assert s.priority == 'high'

    def test_keyword_match_is_case_insensitive(self):
        assert len(synthesize_from_reply('CRITIQUE: sol sec', user_id=1, now=0)) == 1
        assert len(synthesize_from_reply('Critical: dry soil', user_id=1, now=0)) == 1

    def test_many_keywords_still_one_suggestion(self):
        reply = 'Urgent! Situation critique, urgent intervention'
        assert len(synthesize_from_reply(reply, user_id=1, now=0)) == 1

    def test_custom_keywords(self):
        assert synthesize_from_reply('urgent', user_id=1, now=0, keywords=['alarm']) == []

    def test_id_is_stable_within_the_hour(self):
        assert chat_suggestion_id(5, 7200) == chat_suggestion_id(5, 7200 + 3599)
        assert chat_suggestion_id(5, 7200) != chat_suggestion_id(5, 7200 + 3600)
        assert chat_suggestion_id(5, 7200) != chat_suggestion_id(6, 7200)
        assert chat_suggestion_id(5, 7200).startswith('chat_')


class BrokenSession:
    """Session whose every query fails."""

    async def execute(self, *args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('database is down'))


class TestServiceErrors:
    """Failures surface as domain errors, never as partial results."""

    def test_evaluate_without_user(self):
        with pytest.raises(Unauthorized):
            asyncio.run(evaluate(BrokenSession(), BrokenSession(), user_id=None))

    def test_evaluate_query_failure_is_internal(self):
        with pytest.raises(Internal) as excinfo:
            asyncio.run(evaluate(BrokenSession(), BrokenSession(), user_id=1))
        assert excinfo.value.status_code == 500
        assert 'database is down' not in excinfo.value.message

    def test_acknowledge_without_user(self):
        with pytest.raises(Unauthorized):
            asyncio.run(acknowledge(BrokenSession(), 'zone_1_no_data', user_id=None))

    def test_acknowledge_without_suggestion_id(self):
        with pytest.raises(InvalidInput):
            asyncio.run(acknowledge(BrokenSession(), '', user_id=1))

    def test_text_generator_without_key_is_internal(self):
        with pytest.raises(Internal):
            asyncio.run(TextGenerator(api_key='').generate('system', 'prompt'))
