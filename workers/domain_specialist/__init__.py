"""
workers/domain_specialist/__init__.py

Domain specialist worker for personal finance questions.

This worker handles budgeting, saving, debt management and investing
questions. It adapts the depth of its answers to the user's knowledge level and
can call deterministic finance calculators (budget split, compound interest,
emergency fund) through the tool-calling loop of the completion service.
"""

from .worker_domain_specialist import DomainSpecialistWorker

__all__ = ['DomainSpecialistWorker']
