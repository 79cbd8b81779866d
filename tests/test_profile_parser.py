"""Tests for profile parsing and normalization."""

from datetime import datetime

from factories import make_profile
from profile_tuner.services.profile_parser import parse_profile, parse_profile_history


def nightscout_document(start_date: str | None = "2024-03-01T00:00:00.000Z", basal: float = 0.8):
    document = {
        "defaultProfile": "Default",
        "store": {
            "Default": {
                "dia": 4,
                "timezone": "Europe/Warsaw",
                "basal": [
                    {"time": "00:00", "value": basal, "timeAsSeconds": 0},
                    {"time": "06:00", "value": 1.0, "timeAsSeconds": 21600},
                ],
                "carbratio": [{"time": "00:00", "value": 10}],
                "sens": [{"time": "00:00", "value": 50}],
                "target_low": [{"time": "00:00", "value": 90}],
                "target_high": [{"time": "00:00", "value": 120}],
            },
            "Sport": {
                "basal": [{"time": "00:00", "value": 0.4}],
            },
        },
    }
    if start_date:
        document["startDate"] = start_date
    return document


class TestParseProfile:
    """Tests for parse_profile."""

    def test_nightscout_document(self):
        """Test the default store entry is normalized."""
        profile = parse_profile(nightscout_document())

        assert profile.name == "Default"
        assert profile.effective_from == datetime(2024, 3, 1)
        assert [(s.time, s.value) for s in profile.basal] == [("00:00", 0.8), ("06:00", 1.0)]
        assert profile.carb_ratio[0].value == 10
        assert profile.sensitivity[0].value == 50
        assert profile.target[0].low == 90
        assert profile.target[0].high == 120
        assert profile.dia == 4.0
        assert profile.timezone == "Europe/Warsaw"

    def test_unknown_default_falls_back_to_first_store(self):
        document = nightscout_document()
        document["defaultProfile"] = "Missing"

        assert parse_profile(document).name == "Default"

    def test_list_uses_first_document(self):
        newest = nightscout_document(basal=0.9)
        older = nightscout_document(basal=0.7)

        profile = parse_profile([newest, older])

        assert profile.basal[0].value == 0.9

    def test_bare_store_with_aliases(self):
        """Test alternative key names and a scalar carb ratio."""
        profile = parse_profile(
            {
                "basals": [{"start": "00:00", "rate": 0.75}],
                "carb_ratio": 12,
                "isf": [{"start": "00:00", "sensitivity": 45}],
            }
        )

        assert profile.name is None
        assert profile.basal[0].value == 0.75
        assert [(s.time, s.value) for s in profile.carb_ratio] == [("00:00", 12)]
        assert profile.sensitivity[0].value == 45

    def test_time_as_seconds(self):
        profile = parse_profile({"basal": [{"timeAsSeconds": 3600, "value": 1.2}]})
        assert profile.basal[0].time == "01:00"

    def test_malformed_slots_are_dropped(self):
        """Test invalid times, missing values and negative values are dropped."""
        profile = parse_profile(
            {
                "basal": [
                    {"time": "25:00", "value": 1.0},
                    {"time": "01:00"},
                    "02:00",
                    {"time": "03:00", "value": -1},
                    {"time": "00:00", "value": 1.0},
                ]
            }
        )

        assert [(s.time, s.value) for s in profile.basal] == [("00:00", 1.0)]

    def test_slots_are_sorted_and_last_duplicate_wins(self):
        profile = parse_profile(
            {
                "basal": [
                    {"time": "12:00", "value": 1.0},
                    {"time": "00:00", "value": 0.5},
                    {"time": "12:00", "value": 1.1},
                ]
            }
        )

        assert [(s.time, s.value) for s in profile.basal] == [("00:00", 0.5), ("12:00", 1.1)]

    def test_wrap_expansion(self):
        """Test hours before the first slot get the last slot's rate."""
        profile = parse_profile(
            {"basal": [{"time": "06:00", "value": 1.0}, {"time": "22:00", "value": 0.5}]}
        )

        hourly = profile.hourly_basal()

        assert hourly[:6] == [0.5] * 6
        assert hourly[6] == 1.0
        assert hourly[23] == 0.5

    def test_unusable_input_returns_none(self):
        assert parse_profile(None) is None
        assert parse_profile("garbage") is None
        assert parse_profile({}) is None
        assert parse_profile([]) is None
        assert parse_profile({"store": {}}) is None
        assert parse_profile({"basal": []}) is None

    def test_profile_passes_through(self):
        profile = make_profile()
        assert parse_profile(profile) is profile


class TestParseProfileHistory:
    """Tests for parse_profile_history."""

    def test_sorted_by_effective_from_and_undated_skipped(self):
        history = parse_profile_history(
            [
                nightscout_document("2024-03-03T00:00:00Z", basal=0.9),
                nightscout_document(None),
                nightscout_document("2024-03-01T00:00:00Z", basal=0.7),
            ]
        )

        assert [p.effective_from for p in history] == [datetime(2024, 3, 1), datetime(2024, 3, 3)]
        assert [p.basal[0].value for p in history] == [0.7, 0.9]

    def test_epoch_start_date(self):
        document = nightscout_document(None)
        document["mills"] = 1709539200000

        history = parse_profile_history([document])

        assert history[0].effective_from == datetime(2024, 3, 4, 8, 0)

    def test_non_list_input(self):
        assert parse_profile_history(None) == []
