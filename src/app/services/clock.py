from abc import ABC, abstractmethod
from datetime import datetime


class Clock(ABC):
    """Source of the current time (naive UTC)"""

    @abstractmethod
    def now(self) -> datetime:
        pass
