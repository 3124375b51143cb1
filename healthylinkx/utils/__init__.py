"""Healthylinkx utility helpers."""

from .async_utils import run_in_executor, timeout_wrapper

__all__ = [
    'run_in_executor',
    'timeout_wrapper',
]
