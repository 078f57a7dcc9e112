"""Anthropic Messages <-> OpenAI Chat Completions translation.

The request path runs sanitizer -> tool mapper -> message normalizer and
renders a chat-completions body; the response path assembles a Messages
response from one completion or re-emits a completion stream as Messages
events.
"""

from .sanitizer import DROP_KEYS, sanitize_root
from .stream_adapter import (
    ChatToMessagesStreamAdapter,
    StreamState,
    adapt_chat_stream_to_messages,
)
from .translator import (
    TranslatedRequest,
    chat_completion_to_messages,
    map_stop_reason,
    message_id_from,
    messages_to_chat_completions,
    new_message_id,
    normalize_request,
)

__all__ = [
    "ChatToMessagesStreamAdapter",
    "DROP_KEYS",
    "StreamState",
    "TranslatedRequest",
    "adapt_chat_stream_to_messages",
    "chat_completion_to_messages",
    "map_stop_reason",
    "message_id_from",
    "messages_to_chat_completions",
    "new_message_id",
    "normalize_request",
    "sanitize_root",
]
