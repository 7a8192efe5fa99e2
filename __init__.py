"""
Auto Reply Bot - Rule-based chat auto responder
===============================================

An automated chat responder that decides per inbound message whether
and how to reply:
1. Gate chain (bot enabled, chat type, sleep window)
2. Priority-ordered rule matching with canned replies
3. Generative fallback through an LLM provider (Gemini, OpenRouter, Groq)

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"
