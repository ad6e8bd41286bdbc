import os
import yaml
import keyring
from keyring.errors import PasswordDeleteError

APP_VERSION = "1.0.0"
ENV_PREFIX = "WORKOUT_TRACKER_"


class YamlConfig:
    """Tracker settings stored in YAML, with secrets optionally kept in the keyring.

    Values can be overridden per process through ``WORKOUT_TRACKER_<KEY>``
    environment variables; overrides are never written back to the file.
    """

    SENSITIVE_KEYS = {"api_token"}

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "workout-tracker"

    def _read_file(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def _env_overrides(self) -> dict:
        out = {}
        for name, value in os.environ.items():
            if name.startswith(ENV_PREFIX) and value != "":
                out[name[len(ENV_PREFIX):].lower()] = yaml.safe_load(value)
        return out

    def load(self) -> dict:
        data = self._read_file()
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & set(data):
                secret = keyring.get_password(self.service, key)
                if secret is not None:
                    data[key] = secret
                else:
                    data.pop(key)
        data.update(self._env_overrides())
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if out.get(key) is None:
                    out.pop(key, None)
                    continue
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)

    def get(self, key: str, default=None):
        return self.load().get(key, default)

    def set(self, key: str, value) -> None:
        """Persist a single setting, keeping the rest of the file intact."""
        data = self._read_file()
        if self.encrypt:
            for name in self.SENSITIVE_KEYS & set(data):
                secret = keyring.get_password(self.service, name)
                if secret is None:
                    data.pop(name)
                else:
                    data[name] = secret
        data[key] = value
        self.save(data)

    def forget_secret(self, key: str) -> None:
        """Remove ``key`` from the file and, when encrypting, from the keyring."""
        data = self._read_file()
        data.pop(key, None)
        if self.encrypt and key in self.SENSITIVE_KEYS:
            try:
                keyring.delete_password(self.service, key)
            except PasswordDeleteError:
                pass
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)
