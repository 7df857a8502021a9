"""
workers/registration/__init__.py

Registration worker that collects a user's profile step by step.

The worker is deterministic: it validates answers with regular-expression and
date heuristics, persists each collected field through the user-profile store
and replies with fixed templates in English, Portuguese or Spanish.
"""

from .worker_registration import RegistrationWorker

__all__ = ['RegistrationWorker']
