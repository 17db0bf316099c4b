# workbook/constants.py
from enum import Enum


class ErrorCodes(Enum):
    STEP_NOT_FOUND = "STEP_NOT_FOUND"
    STEP_LOCKED = "STEP_LOCKED"
    STEP_INCOMPLETE = "STEP_INCOMPLETE"
    SAVE_FAILED = "SAVE_FAILED"
    LAST_ENTRY = "LAST_ENTRY"
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"
    INVALID_FIELD = "INVALID_FIELD"
    RESERVED_FIELD = "RESERVED_FIELD"
    PHRASE_REJECTED = "PHRASE_REJECTED"


class RedisKeys(Enum):
    # Suffixes appended to the configured key prefix
    UNLOCK_ATTEMPTS = "unlock_attempts"
