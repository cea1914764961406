"""
Resolved tunables for one resource type.
"""
from pydantic import BaseModel, ConfigDict, Field, StrictInt


class StrategyConfig(BaseModel):
    """
    Immutable strategy settings, resolved once per resource type by
    ``ConfigResolver`` and handed to the keyer, registrar and dispatcher.
    """
    latency: StrictInt = Field(gt=0, description="Bucketing window width in seconds")
    margin: StrictInt = Field(ge=0, description="Seconds after the bucket boundary before the job runs")
    ttl: StrictInt = Field(gt=0, description="Expiry of bucket and index keys, in seconds")
    queue: str = Field(min_length=1, description="Job queue name")

    model_config = ConfigDict(frozen=True, extra="forbid")
