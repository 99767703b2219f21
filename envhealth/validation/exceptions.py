"""Validation engine exceptions."""

from __future__ import annotations


class ValidationError(Exception):
    """Base exception for validation engine errors."""


class InvalidEnvironmentError(ValidationError):
    """The environment descriptor is missing or malformed."""
