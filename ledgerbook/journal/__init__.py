"""Journal package."""

from ledgerbook.journal.recorder import JournalRecorder, validate_entry_lines

__all__ = [
    "JournalRecorder",
    "validate_entry_lines",
]
