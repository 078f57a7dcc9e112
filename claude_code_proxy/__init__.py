"""Claude Code Proxy

Accepts Anthropic Messages API requests and forwards them to an
OpenAI-compatible chat-completions upstream, translating requests,
responses and event streams in both directions.
"""

__version__ = "0.1.0"
