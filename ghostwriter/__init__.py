"""Ghostwriter - chain-of-thought reply engine.

Turns a conversation history, a style document and an incoming message into
either one approved outgoing message or a deliberate no-op.
"""

__version__ = "0.1.0"
