from pydantic import BaseModel, Field


class IngestionConfig(BaseModel):
    """Config for price refresh runs."""

    batch_size: int = Field(default=5, ge=1)
    batch_delay: float = 1.0
    retry_count: int = Field(default=3, ge=1)
    retry_delay: float = 1.0
    lookback_days: int = 10
