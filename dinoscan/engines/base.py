# dinoscan/engines/base.py
from abc import ABC, abstractmethod


class BaseUpstreamEngine(ABC):
    @abstractmethod
    async def chat_completion(self, payload: dict) -> dict:
        """Send one completion request upstream and return the parsed envelope."""
