import os
import random
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "scripts"))

import nearby_probe
from mecalink.client.resilience import Degraded, Real, synthesize_providers
from mecalink.models import Position, Provider

ORIGIN = Position(latitude=48.8566, longitude=2.3522)


def test_report_for_live_result():
    provider = Provider(id="gar_1", name="Garage du Centre", position=ORIGIN, distance_km=0.0)
    report = nearby_probe.build_report(Real(data=[provider], fetched_at=0.0), ORIGIN, 10.0)

    assert report["degraded"] is False
    assert report["count"] == 1
    assert report["providers"][0] == {"id": "gar_1", "name": "Garage du Centre", "distance_km": 0.0, "synthetic": False}
    assert "warning" not in report


def test_report_flags_synthetic_fallback():
    placeholders = synthesize_providers(ORIGIN, 5.0, count=3, rng=random.Random(11))
    result = Degraded(data=placeholders, source="synthetic", reason="offline")
    report = nearby_probe.build_report(result, ORIGIN, 5.0)

    assert report["degraded"] is True
    assert report["source"] == "synthetic"
    assert report["warning"]
    assert all(item["synthetic"] for item in report["providers"])


def test_main_exits_non_zero_when_server_is_unreachable(capsys):
    exit_code = nearby_probe.main(["48.8566", "2.3522", "--radius", "3", "--api-url", "http://127.0.0.1:9", "--timeout", "0.5"])
    assert exit_code == 1
    assert '"degraded": true' in capsys.readouterr().out


def test_main_rejects_out_of_range_coordinates(capsys):
    with pytest.raises(SystemExit) as excinfo:
        nearby_probe.main(["123.0", "2.35"])
    assert excinfo.value.code == 2
    assert "latitude" in capsys.readouterr().err
