"""
shared/__init__.py

Shared utilities and models used across multiple modules.

This package contains common functionality that is used by every stage of
the conversation pipeline:
- models: Conversation state, messages and structured LLM outputs
- exceptions: Error hierarchy raised by collaborators and caught by stages
- validators: Registration field heuristics shared by the router and worker
- channel_format: Markdown-to-channel text formatting
- utils: Small helpers for logging and message normalization
"""
