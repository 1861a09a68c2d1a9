"""Persistence for test runs and case results."""

from calltest.persistence.base import ResultStore
from calltest.persistence.json_file import JsonFileResultStore
from calltest.persistence.memory import InMemoryResultStore

__all__ = ["InMemoryResultStore", "JsonFileResultStore", "ResultStore"]
