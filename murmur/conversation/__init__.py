"""Conversation module -- transcript state and the interactive chat shell.

Public API: Conversation, Shell, ShellOptions, Spinner, TranscriptLog,
load_transcript.
"""

from murmur.conversation.conversation import Conversation
from murmur.conversation.shell import Shell, ShellOptions
from murmur.conversation.spinner import Spinner
from murmur.conversation.transcript import TranscriptLog, load_transcript

__all__ = [
    "Conversation",
    "Shell",
    "ShellOptions",
    "Spinner",
    "TranscriptLog",
    "load_transcript",
]
