"""Streaming relay re-framing Gemini ``streamGenerateContent`` SSE for browsers.

Exposes ``POST /api/gemini`` which answers with a normalised
``data: {"text": ...}`` event stream terminated by ``data: [DONE]``.
"""

__all__ = []
