from abc import ABC, abstractmethod
from typing import Dict

from models.results import SendResult


class BaseSender(ABC):
    @abstractmethod
    async def verify(self) -> None:
        pass

    @abstractmethod
    async def send(self,
             to_email: str,
             subject: str,
             html_body: str,
             text_body: str = None,
             reply_to: str = None,
             headers: Dict[str, str] = None) -> SendResult:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    def is_open(self) -> bool:
        return False
