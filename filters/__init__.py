"""
filters package: the stages at both ends of a turn.

Included modules:
- input_filter: Sanitizes, language-tags and deduplicates the inbound turn
- output_filter: Splits, tone-adjusts and channel-formats the worker reply
- tone: Deterministic per-language tone rules used by the output filter
"""

from .input_filter import InputFilter
from .output_filter import OutputFilter

__all__ = ['InputFilter', 'OutputFilter']
