from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class HubStatsOut(BaseModel):
    received: int = 0
    accepted: int = 0
    rejected: int = 0
    applied: int = 0
    evicted: int = 0
    operator_messages: int = 0
    stale_rebroadcasts: int = 0
    last_frame_at: float = 0


class HealthOut(BaseModel):
    status: str
    timestamp: int
    connections: Dict[str, int] = Field(default_factory=dict)
    systems: List[str] = Field(default_factory=list)
    stats: HubStatsOut


class SystemsOut(BaseModel):
    systems: List[str] = Field(default_factory=list)


class WaveformOut(BaseModel):
    # Channel arrays (leftAtrial, aortic, ...) ride along as extra fields
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    system_id: str = Field(..., alias="systemId")
    sample_rate: float = Field(0.0, alias="sampleRate")
    unit: str = "mmHg"

    @classmethod
    def from_buffer(cls, system_id: str, payload: Dict[str, Any]) -> "WaveformOut":
        return cls.model_validate({"systemId": system_id, **payload})
