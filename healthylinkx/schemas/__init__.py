"""Pydantic schemas for Healthylinkx."""

from .search import DoctorRecord, DoctorSearchOutput, SearchDoctorsRequest

__all__ = [
    'DoctorRecord',
    'DoctorSearchOutput',
    'SearchDoctorsRequest',
]
