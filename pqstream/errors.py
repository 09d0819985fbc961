# -*- coding: utf-8 -*-
"""Exception types for pqstream.

Every error carries a ``recoverable`` flag. Recoverable errors are scoped to a
single record and may be skipped by the pipe's error policy; everything else
aborts the run.
"""

from typing import Optional


class PipeError(Exception):
    """Base pqstream exception."""
    recoverable = False


# ---------------------------------------------------------------------------
# Source side
# ---------------------------------------------------------------------------

class SourceError(PipeError):
    """Errors raised while pulling records from a source."""
    pass


class DecodeError(SourceError):
    """Columnar file could not be decoded (corrupt page, schema mismatch)."""
    pass


class SourceTransportError(SourceError):
    """Subscription connection reported a terminal error."""
    pass


class EndOfInput(SourceError):
    """Raised when a finished source is pulled again."""
    pass


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

class ConvertError(PipeError):
    """A value could not be projected into JSON."""
    recoverable = True


class UnrepresentableValue(ConvertError):
    """Value variant has no JSON projection."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"No JSON projection for value {value!r}")


class StructureTooDeep(ConvertError):
    """Nesting exceeded the converter's recursion bound."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Value nesting exceeds maximum depth of {max_depth}")


# ---------------------------------------------------------------------------
# Sink side
# ---------------------------------------------------------------------------

class SinkError(PipeError):
    """Errors raised while delivering records to a sink."""
    pass


class SinkTransportError(SinkError):
    """Network failure or timeout talking to the sink."""
    pass


class DeliveryError(SinkError):
    """The sink answered, but rejected the delivery."""

    def __init__(self, endpoint: str, status: int, body: str):
        self.endpoint = endpoint
        self.status = status
        self.body = body
        super().__init__(
            f"Failed to send to {endpoint}. Status: {status}, Body: {body}"
        )


class SerializationError(SinkError):
    """A single record could not be decoded or encoded for the sink."""
    recoverable = True

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigError(PipeError):
    """Invalid configuration, reported before any connection is opened."""
    pass


class ConflictingOffsetSpec(ConfigError):
    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(
            f"Cannot specify both a start offset ({start}) and an end offset ({end})"
        )


class InvalidOffset(ConfigError):
    def __init__(self, offset):
        self.offset = offset
        super().__init__(f"Invalid offset {offset!r}: offsets must be non-negative")
