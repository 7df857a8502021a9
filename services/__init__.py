"""
services/__init__.py

Stateful services used by the conversation pipeline: the checkpoint store,
thread management, language detection and paced delivery.
"""
