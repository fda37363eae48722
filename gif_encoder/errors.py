"""Exceptions raised when the encoder is driven in the wrong order."""

from __future__ import annotations

import enum


class ErrorCode(enum.Enum):
    NOT_STARTED = "not_started"
    ALREADY_STARTED = "already_started"
    FINISHED = "finished"
    NO_IMAGE_DATA = "no_image_data"
    OPTIONS_FROZEN = "options_frozen"


class EncoderError(Exception):
    """Usage-sequence error.

    Attributes:
        code: Which misuse happened; the message names the operation and state.
    """

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.args[0]}"
