"""
workers package: the stages that answer the user.

Included modules:
- base: BaseWorker, the shared reply/fallback contract and the registration interruption logic
- registration: Step-by-step account creation
- domain_specialist: Personal finance coaching with calculator tools
- general: Open conversation and the default destination of the router
"""

from .registration import RegistrationWorker
from .domain_specialist import DomainSpecialistWorker
from .general import GeneralWorker

__all__ = ['RegistrationWorker', 'DomainSpecialistWorker', 'GeneralWorker']
