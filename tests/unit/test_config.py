"""Tests for the profile store."""

import pytest
import yaml
from pathlib import Path

from qontrol.config import Config, Profile, get_config_dir, get_config_path
from qontrol.errors import ConfigError, NoDefaultProfile, ProfileNotFound


class TestProfile:
    def test_from_dict_defaults(self):
        profile = Profile.from_dict("prod", {"host": "prod.example.com"})
        assert profile.port == 8000
        assert profile.token == ""
        assert profile.insecure is False
        assert profile.cluster_uuid is None

    def test_missing_host(self):
        with pytest.raises(ConfigError, match="missing 'host'"):
            Profile.from_dict("prod", {"port": 8000})

    def test_invalid_port(self):
        with pytest.raises(ConfigError, match="invalid port"):
            Profile.from_dict("prod", {"host": "h", "port": "eighty"})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError):
            Profile.from_dict("prod", "prod.example.com")

    def test_to_dict_omits_unset_optionals(self):
        data = Profile(name="prod", host="h", token="t").to_dict()
        assert data == {"host": "h", "port": 8000, "token": "t", "insecure": False}


class TestConfig:
    def test_load_missing_file_is_empty(self, temp_data_dir):
        config = Config.load(str(temp_data_dir / "nope.yaml"))
        assert config.profiles == {}
        assert config.default_profile is None

    def test_load(self, profile_store):
        assert list(profile_store.profiles) == ["A", "B", "C"]
        assert profile_store.default_profile == "A"
        assert profile_store.profiles["B"].port == 8443
        assert profile_store.profiles["C"].insecure is True

    def test_load_default_location(self, profile_store):
        assert Config.load().profiles.keys() == profile_store.profiles.keys()

    def test_invalid_yaml(self, temp_data_dir):
        path = temp_data_dir / "bad.yaml"
        path.write_text("profiles: [unclosed")
        with pytest.raises(ConfigError, match="failed to parse"):
            Config.load(str(path))

    def test_profiles_must_be_mapping(self):
        with pytest.raises(ConfigError):
            Config.from_dict({"profiles": ["a", "b"]})

    def test_save_round_trip(self, temp_data_dir):
        config = Config(path=temp_data_dir / "sub" / "config.yaml")
        config.add_profile(Profile(name="prod", host="h", token="t", cluster_uuid="u"))
        config.add_profile(Profile(name="dev", host="d"))

        path = config.save()

        raw = yaml.safe_load(path.read_text())
        assert raw["default_profile"] == "prod"
        assert list(raw["profiles"]) == ["prod", "dev"]
        reloaded = Config.load(str(path))
        assert reloaded.profiles == config.profiles

    def test_first_profile_becomes_default(self):
        config = Config()
        config.add_profile(Profile(name="a", host="h"))
        config.add_profile(Profile(name="b", host="h"))
        assert config.default_profile == "a"

        config.add_profile(Profile(name="c", host="h"), make_default=True)
        assert config.default_profile == "c"

    def test_remove_profile_clears_default(self, profile_store):
        profile_store.remove_profile("A")
        assert "A" not in profile_store.profiles
        assert profile_store.default_profile is None

    def test_remove_unknown(self, profile_store):
        with pytest.raises(ProfileNotFound):
            profile_store.remove_profile("Z")

    def test_set_cluster_uuid(self, profile_store):
        assert profile_store.set_cluster_uuid("A", "uuid-a") is True
        assert profile_store.set_cluster_uuid("A", "uuid-a") is False
        assert profile_store.set_cluster_uuid("Z", "uuid-z") is False
        assert profile_store.profiles["A"].cluster_uuid == "uuid-a"


class TestResolveProfile:
    def test_flag_wins(self, profile_store, monkeypatch):
        monkeypatch.setenv("QONTROL_PROFILE", "C")
        assert profile_store.resolve_profile("B").name == "B"

    def test_env_before_default(self, profile_store, monkeypatch):
        monkeypatch.setenv("QONTROL_PROFILE", "C")
        assert profile_store.resolve_profile().name == "C"

    def test_default(self, profile_store):
        assert profile_store.resolve_profile().name == "A"

    def test_no_default(self):
        with pytest.raises(NoDefaultProfile):
            Config().resolve_profile()

    def test_unknown_name(self, profile_store):
        with pytest.raises(ProfileNotFound, match="'Z' not found"):
            profile_store.resolve_profile("Z")


class TestSelectProfiles:
    def test_all_in_store_order(self, profile_store):
        assert [p.name for p in profile_store.select_profiles()] == ["A", "B", "C"]

    def test_filter_order_and_unknown_names_dropped(self, profile_store):
        selected = profile_store.select_profiles(["C", "nope", "A", "C"])
        assert [p.name for p in selected] == ["C", "A"]

    def test_empty_result(self, profile_store):
        with pytest.raises(ConfigError, match="no matching profiles"):
            profile_store.select_profiles(["nope"])

    def test_empty_store(self):
        with pytest.raises(ConfigError):
            Config().select_profiles()


class TestConfigPaths:
    def test_env_override(self, monkeypatch, temp_data_dir):
        monkeypatch.setenv("QONTROL_CONFIG_DIR", str(temp_data_dir))
        assert get_config_path() == temp_data_dir / "config.yaml"

    def test_xdg(self, monkeypatch):
        monkeypatch.delenv("QONTROL_CONFIG_DIR")
        monkeypatch.setenv("XDG_CONFIG_HOME", "/tmp/xdg")
        assert get_config_dir() == Path("/tmp/xdg/qontrol")
