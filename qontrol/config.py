"""Profile store for qontrol.

Profiles live in a single YAML file:

    default_profile: prod
    profiles:
      prod:
        host: qumulo.example.com
        port: 8000
        token: access-v1:...
        insecure: false
        cluster_uuid: 7f2c...

The file is read whole and written whole. Profile order is the mapping order
in the file, which is also the order clusters appear in fleet output.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError, NoDefaultProfile, ProfileNotFound

APP_NAME = "qontrol"
CONFIG_FILE = "config.yaml"
DEFAULT_PORT = 8000


def get_config_dir() -> Path:
    """Get the profile store directory.

    Checks QONTROL_CONFIG_DIR, then $XDG_CONFIG_HOME/qontrol, then
    ~/.config/qontrol. The directory is not created here.
    """
    if env_dir := os.environ.get("QONTROL_CONFIG_DIR"):
        return Path(env_dir)
    if xdg := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE


@dataclass
class Profile:
    """Connection settings for one cluster."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    token: str = ""
    insecure: bool = False  # skip TLS certificate validation
    cluster_uuid: Optional[str] = None  # backfilled on first successful probe
    base_url: Optional[str] = None  # overrides https://host:port

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Profile":
        if not isinstance(data, dict):
            raise ConfigError(f"profile '{name}' must be a mapping")
        host = data.get("host")
        if not host:
            raise ConfigError(f"profile '{name}' is missing 'host'")
        try:
            port = int(data.get("port", DEFAULT_PORT))
        except (TypeError, ValueError):
            raise ConfigError(f"profile '{name}' has an invalid port: {data.get('port')!r}")
        return cls(
            name=name,
            host=str(host),
            port=port,
            token=str(data.get("token") or ""),
            insecure=bool(data.get("insecure", False)),
            cluster_uuid=data.get("cluster_uuid") or None,
            base_url=data.get("base_url") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "token": self.token,
            "insecure": self.insecure,
        }
        if self.cluster_uuid:
            data["cluster_uuid"] = self.cluster_uuid
        if self.base_url:
            data["base_url"] = self.base_url
        return data


@dataclass
class Config:
    """All configured profiles plus the optional default."""

    profiles: Dict[str, Profile] = field(default_factory=dict)
    default_profile: Optional[str] = None
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> "Config":
        """Create config from a parsed YAML document."""
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping")
        profiles_data = data.get("profiles") or {}
        if not isinstance(profiles_data, dict):
            raise ConfigError("'profiles' must be a mapping")

        profiles = {}
        for name, prof_data in profiles_data.items():
            profiles[str(name)] = Profile.from_dict(str(name), prof_data)

        return cls(
            profiles=profiles,
            default_profile=data.get("default_profile") or None,
            path=path,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file. A missing file is an empty store."""
        if not path.exists():
            return cls(path=path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse {path}: {e}")
        except OSError as e:
            raise ConfigError(f"failed to read {path}: {e}")
        return cls.from_dict(data, path=path)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load the profile store from an explicit path or the default location."""
        path = Path(config_path) if config_path else get_config_path()
        return cls.from_yaml(path)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.default_profile:
            data["default_profile"] = self.default_profile
        data["profiles"] = {name: prof.to_dict() for name, prof in self.profiles.items()}
        return data

    def save(self) -> Path:
        """Write the whole store back to disk.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        path = self.path or get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        os.replace(tmp, path)
        self.path = path
        return path

    # --- Profile lookup ---

    def get_profile(self, name: str) -> Profile:
        try:
            return self.profiles[name]
        except KeyError:
            raise ProfileNotFound(name)

    def resolve_profile(self, flag: Optional[str] = None) -> Profile:
        """Pick the profile for a single-cluster command.

        Checks in order:
        1. The --profile flag
        2. QONTROL_PROFILE env var
        3. default_profile from the store

        Raises:
            NoDefaultProfile: If none of the above names a profile.
            ProfileNotFound: If the chosen name is not in the store.
        """
        name = flag or os.environ.get("QONTROL_PROFILE") or self.default_profile
        if not name:
            raise NoDefaultProfile()
        return self.get_profile(name)

    def select_profiles(self, filters: Optional[List[str]] = None) -> List[Profile]:
        """Return the working set for a fleet command.

        Unknown names in ``filters`` are dropped. With filters the order is the
        filter order; without, it is the store order.

        Raises:
            ConfigError: If the resulting set is empty.
        """
        if filters:
            selected = []
            for name in dict.fromkeys(filters):
                if name in self.profiles:
                    selected.append(self.profiles[name])
        else:
            selected = list(self.profiles.values())

        if not selected:
            raise ConfigError("no matching profiles found - add profiles with `qontrol profile add`")
        return selected

    # --- Mutation ---

    def add_profile(self, profile: Profile, make_default: bool = False) -> None:
        self.profiles[profile.name] = profile
        if make_default or not self.default_profile:
            self.default_profile = profile.name

    def remove_profile(self, name: str) -> Profile:
        if name not in self.profiles:
            raise ProfileNotFound(name)
        removed = self.profiles.pop(name)
        if self.default_profile == name:
            self.default_profile = None
        return removed

    def set_cluster_uuid(self, name: str, uuid: str) -> bool:
        """Record a backfilled cluster UUID. Returns True if anything changed."""
        profile = self.profiles.get(name)
        if profile is None or not uuid or profile.cluster_uuid == uuid:
            return False
        profile.cluster_uuid = uuid
        return True
