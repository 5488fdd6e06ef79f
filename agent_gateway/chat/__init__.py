"""
Chat turn service.
"""

from .service import (
    ChatOverrides,
    ChatReply,
    ChatService,
    StreamSession,
    ToolUsage,
    decode_file_content,
)

__all__ = [
    "ChatOverrides",
    "ChatReply",
    "ChatService",
    "StreamSession",
    "ToolUsage",
    "decode_file_content",
]
