"""
Pydantic schemas for the cone counter API.

Request models also accept the field names of the original web client
(`timestamp`, `notes`, `cones`).
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cone_counter.db import EventRecord
from cone_counter.stats import EventStats, TimeAnalysis

MAX_NOTE_LENGTH = 2000

ImportMode = Literal["append", "replace"]


class EventPayload(BaseModel):
    """Body of POST /events and PUT /events/{id}."""

    instant: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("instant", "timestamp")
    )
    note: Optional[str] = Field(
        default=None,
        max_length=MAX_NOTE_LENGTH,
        validation_alias=AliasChoices("note", "notes"),
    )


class EventResponse(BaseModel):
    id: str
    ownerId: str
    instant: str
    localDate: str
    localTime: str
    localWeekday: str
    note: str
    createdAt: str
    updatedAt: str

    @classmethod
    def from_record(cls, record: EventRecord) -> "EventResponse":
        return cls(
            id=record.event_id,
            ownerId=record.owner_id,
            instant=record.instant,
            localDate=record.local_date,
            localTime=record.local_time,
            localWeekday=record.local_weekday,
            note=record.note,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


class DeleteEventResponse(BaseModel):
    message: str


class StatsResponse(BaseModel):
    total: int
    today: int
    thisWeek: int
    thisMonth: int
    averagePerDay: float
    averagePerWeek: float
    averagePerMonth: float

    @classmethod
    def from_stats(cls, stats: EventStats) -> "StatsResponse":
        return cls(
            total=stats.total,
            today=stats.today,
            thisWeek=stats.this_week,
            thisMonth=stats.this_month,
            averagePerDay=stats.average_per_day,
            averagePerWeek=stats.average_per_week,
            averagePerMonth=stats.average_per_month,
        )


class AnalysisResponse(BaseModel):
    hourOfDay: dict[int, int]
    dayOfWeek: dict[str, int]
    monthOfYear: dict[int, int]

    @classmethod
    def from_analysis(cls, analysis: TimeAnalysis) -> "AnalysisResponse":
        return cls(
            hourOfDay=analysis.hour_of_day,
            dayOfWeek=analysis.day_of_week,
            monthOfYear=analysis.month_of_year,
        )


class ExportResponse(BaseModel):
    events: list[EventResponse]
    exportedAt: str
    version: str


class ImportEventItem(BaseModel):
    """One event in an import payload; extra keys from an export are ignored."""

    model_config = ConfigDict(extra="ignore")

    instant: str = Field(validation_alias=AliasChoices("instant", "timestamp"))
    note: Optional[str] = Field(
        default=None,
        max_length=MAX_NOTE_LENGTH,
        validation_alias=AliasChoices("note", "notes"),
    )
    createdAt: Optional[str] = None


class ImportRequest(BaseModel):
    events: list[ImportEventItem] = Field(
        validation_alias=AliasChoices("events", "cones")
    )


class ImportResponse(BaseModel):
    success: bool
    message: str
    importedCount: int
    mode: ImportMode


class FirebaseConfigResponse(BaseModel):
    apiKey: str
    authDomain: str
    projectId: str
    storageBucket: str
    messagingSenderId: str
    appId: str
