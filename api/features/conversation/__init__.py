"""Conversation feature package: chatbot dialogue with the local medical model.

Holds per-owner multi-turn conversations, bounds the context forwarded to
the model and exposes chat, history, clear and listing operations.
"""
