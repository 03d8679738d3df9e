"""Tests for the weather cache and the forecast endpoint."""
import random

from irrigation.weather import WeatherCache, simulate_forecast


class FakeClock:

    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestWeatherCache:

    def test_loader_runs_once_while_fresh(self):
        clock = FakeClock()
        cache = WeatherCache(ttl_seconds=1800, clock=clock)
        calls = []

        def loader():
            calls.append(clock.now)
            return {'n': len(calls)}

        assert cache.get(loader) == {'n': 1}
        clock.now += 1799
        assert cache.get(loader) == {'n': 1}
        assert len(calls) == 1

    def test_reload_after_expiry(self):
        clock = FakeClock()
        cache = WeatherCache(ttl_seconds=1800, clock=clock)
        counter = iter(range(10))

        first = cache.get(lambda: next(counter))
        clock.now += 1800
        second = cache.get(lambda: next(counter))
        assert (first, second) == (0, 1)
        assert cache.expiry == clock.now + 1800

    def test_empty_cache_is_not_fresh(self):
        assert not WeatherCache(clock=FakeClock()).is_fresh()


class TestSimulatedForecast:

    def test_shape(self):
        forecast = simulate_forecast('Dakar', now=1_700_000_000, rng=random.Random(3))
        assert forecast['location'] == 'Dakar'
        assert forecast['lastUpdated'] == 1_700_000_000
        assert len(forecast['forecast']) == 7
        for day in forecast['forecast']:
            assert 15 <= day['temp'] <= 35
            assert 40 <= day['humidity'] <= 80
            assert 0 <= day['precipitation'] <= 10
            assert 0 <= day['windSpeed'] <= 20
            assert day['condition'] in ('sunny', 'cloudy', 'rainy', 'partly-cloudy')

    def test_seeded_rng_is_repeatable(self):
        a = simulate_forecast('X', now=0, rng=random.Random(7))
        b = simulate_forecast('X', now=0, rng=random.Random(7))
        assert a == b


class TestForecastAPI:

    def test_requires_token(self, client):
        assert client.get('/api/weather/forecast').status_code == 401

    def test_forecast_is_cached(self, client, make_user):
        _, headers = make_user('sky@example.com')
        first = client.get('/api/weather/forecast', headers=headers)
        second = client.get('/api/weather/forecast', headers=headers)
        assert first.status_code == 200
        assert first.json() == second.json()
        assert len(first.json()['forecast']) == 7
