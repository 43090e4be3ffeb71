"""
Bounded pub/sub channel on a capped collection.

Key Features:
- Fixed capacity with oldest-first eviction
- Blocking consumer that delivers entries in insertion order
- Automatic cursor resubscription after transient cluster faults
- Cooperative shutdown through a stop token
"""

from .base import TailingQueue
from .consumer import QueueConsumer
from .tailing import MongoTailingQueue, StopToken

__all__ = ['TailingQueue', 'MongoTailingQueue', 'QueueConsumer', 'StopToken']
