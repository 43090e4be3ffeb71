"""
Keyed repositories with locked read-modify-write cycles.
"""

from .base import PessimisticRepo
from .mongo import MongoPessimisticRepo

__all__ = ['PessimisticRepo', 'MongoPessimisticRepo']
