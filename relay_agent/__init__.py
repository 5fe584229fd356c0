"""
Conversation Relay agent.

Relays a streaming voice conversation between a Conversation Relay transport
and an LLM backend, with tool calling routed either back into the
conversation or straight to the transport.
"""

__version__ = "1.0.0"
