from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from config import YamlConfig


class SettingsSchema(BaseModel):
    api_base_url: str = "http://localhost:8000"
    api_token: Optional[str] = None
    user_id: str = "local"
    rest_seconds: int = Field(default=90, gt=0)
    rest_adjust_step: int = Field(default=30, gt=0)
    workout_type: str = "strength"
    db_path: str = "workout.db"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def load_settings(path: str = "settings.yaml") -> SettingsSchema:
    """Read ``path`` and return validated settings with defaults filled in."""
    data = YamlConfig(path).load()
    validate_settings(data)
    return SettingsSchema(**data)
