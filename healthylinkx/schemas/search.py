"""Pydantic schemas for the doctor search tool.

The output field names match the tool contract published to MCP clients.
"""

from typing import Any, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class SearchDoctorsRequest(BaseModel):
    """Doctor search filters.

    Attributes:
        zipcode: Five digit postal code of the doctor's address
        lastname: Last name of the doctor
        specialty: Classification of the doctor's specialty
        gender: Gender of the doctor
    """

    zipcode: Optional[int] = Field(
        default=None, ge=10000, le=99999, description="Zipcode of the address of the doctor"
    )
    lastname: Optional[str] = Field(
        default=None, min_length=1, max_length=100, description="Lastname of the doctor"
    )
    specialty: Optional[str] = Field(
        default=None, min_length=1, max_length=100, description="Specialty of the doctor"
    )
    gender: Optional[Literal["male", "female"]] = Field(
        default=None, description="Gender of the doctor. Select an option"
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={"examples": [{"zipcode": 98052, "lastname": "Smith"}]},
    )


class DoctorRecord(BaseModel):
    """One search hit."""

    Name: str = Field(..., description="Full name of the doctor")
    Address: str = Field(..., description="Street address of the doctor's office")
    City: str = Field(..., description="City where the doctor's office is located")
    Classification: str = Field(
        ..., description="Standard classification of the doctor speciality"
    )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DoctorRecord":
        """Build a record from a ``npidata2`` result row."""
        return cls(
            Name=row.get("Provider_Full_Name") or "",
            Address=row.get("Provider_Full_Street") or "",
            City=row.get("Provider_Full_City") or "",
            Classification=row.get("Classification") or "",
        )


class DoctorSearchOutput(BaseModel):
    """Structured output of the SearchDoctors tool."""

    SearchResults: List[DoctorRecord] = Field(default_factory=list)
