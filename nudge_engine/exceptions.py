"""
Nudge engine exception hierarchy.

    NudgeEngineError (base)
    ├── SourceFetchError
    └── SnoozeStoreError

None of these ever escapes a refresh cycle: a failed source contributes no
records, an unreadable snooze store means nothing is snoozed, and bad
settings fall back to defaults.
"""


class NudgeEngineError(Exception):
    """Base exception for all nudge engine errors."""


class SourceFetchError(NudgeEngineError):
    """A source loader failed or returned an unusable payload."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class SnoozeStoreError(NudgeEngineError):
    """The snooze backend could not be written."""
