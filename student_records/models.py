"""Pydantic data models for student records."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StudentInput(BaseModel):
    """Values submitted through the student form.

    Attribute names are English; the aliases are the column names of the
    ``alunos`` collection in the record store.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="nome", min_length=3, max_length=100)
    birth_date: date = Field(..., alias="data_nascimento")
    course: str = Field(..., alias="curso", min_length=2, max_length=100)
    enrollment_number: str = Field(..., alias="matricula", min_length=3, max_length=50)

    @field_validator("birth_date", mode="before")
    @classmethod
    def _parse_iso_date(cls, value: Any) -> date:
        # Only ISO calendar dates; lax parsing would read "0" as a Unix timestamp.
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValueError("birth date must be an ISO date string")
        return date.fromisoformat(value)

    def to_row(self) -> Dict[str, Any]:
        """Return the payload sent to the store, keyed by column name."""

        return self.model_dump(by_alias=True, mode="json")


class StudentRecord(BaseModel):
    """A persisted student row as returned by the store."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(..., alias="nome")
    birth_date: date = Field(..., alias="data_nascimento")
    course: str = Field(..., alias="curso")
    enrollment_number: str = Field(..., alias="matricula")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("birth_date", mode="before")
    @classmethod
    def _strip_time(cls, value: Any) -> Any:
        # Some projects store timestamps; only the calendar date matters here.
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StudentRecord":
        return cls.model_validate(row)

    def form_values(self) -> Dict[str, str]:
        """Return the record as raw form values for pre-filling the edit form."""

        return {
            "name": self.name,
            "birth_date": self.birth_date.isoformat(),
            "course": self.course,
            "enrollment_number": self.enrollment_number,
        }
