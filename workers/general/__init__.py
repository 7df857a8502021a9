"""
workers/general/__init__.py

General assistant worker for greetings, small talk and anything no specialist claims.

The worker answers through the completion service with the general assistant
prompt. When it is reached while a registration is still in progress it pauses
the registration so the user can come back to it later.
"""

from .worker_general import GeneralWorker

__all__ = ['GeneralWorker']
