"""
Schema for a single "reindex these records" notification.
"""
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class ReindexRequest(BaseModel):
    """
    Transient request; lives only for the duration of one ``postpone`` call.
    Ids are opaque (ints, strings, UUIDs...) and are stringified when encoded.
    Ids and fields must not contain the payload separators.
    """
    resource_type: str = Field(min_length=1)
    ids: Sequence[Any]
    update_fields: Optional[Sequence[str]] = None

    model_config = ConfigDict(frozen=True)
