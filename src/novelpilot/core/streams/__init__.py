"""Streaming session lifecycle."""

from novelpilot.core.streams.composer import ComposerDirective, parse_composer_input
from novelpilot.core.streams.conversation import Conversation
from novelpilot.core.streams.events import parse_stream_event
from novelpilot.core.streams.manager import StreamSession, StreamSessionManager
from novelpilot.core.streams.text import append_with_overlap, format_elapsed_label, overlap_remainder

__all__ = [
    "ComposerDirective",
    "Conversation",
    "StreamSession",
    "StreamSessionManager",
    "append_with_overlap",
    "format_elapsed_label",
    "overlap_remainder",
    "parse_composer_input",
    "parse_stream_event",
]
