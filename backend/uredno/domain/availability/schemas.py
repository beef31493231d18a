from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class OpenSlot(BaseModel):
    date: date
    time_slot: str
    available_team_count: int
    available_team_numbers: list[int] = Field(default_factory=list)


class TeamAvailability(BaseModel):
    team_number: int
    is_available: bool

    model_config = ConfigDict(from_attributes=True)


class NextSlot(BaseModel):
    date: date
    time_slot: str
    team_number: int

    model_config = ConfigDict(from_attributes=True)


class DateStatus(BaseModel):
    date: date
    fully_booked: bool


class SlotCell(BaseModel):
    """Identifies one (date, time_slot, team_number) cell for admin operations."""

    model_config = ConfigDict(extra="forbid")

    date: date
    time_slot: str
    team_number: int = Field(ge=1)


class SeedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start_date: date | None = None
    days: int = Field(default=30, ge=1, le=90)


class SeedResult(BaseModel):
    start_date: date
    end_date: date
    created: int


class CellChangeResult(BaseModel):
    changed: bool
    cell: SlotCell
