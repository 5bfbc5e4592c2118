from pydantic import BaseModel, Field, ValidationError


class TrackerSettings(BaseModel):
    api_url: str = "http://localhost:8000"
    request_timeout: float = Field(10.0, gt=0)
    auto_advance_delay: float = Field(0.5, ge=0)
    default_rest_seconds: int = Field(90, ge=0)
    default_target_sets: int = Field(3, ge=1)
    default_target_reps: int = Field(10, ge=0)
    default_target_weight: float = Field(0.0, ge=0)
    weight_unit: str = "kg"
    log_level: str = "INFO"


def validate_settings(data: dict) -> None:
    try:
        TrackerSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
