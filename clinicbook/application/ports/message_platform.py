from abc import ABC, abstractmethod


class MessagePlatformPort(ABC):
    @abstractmethod
    def send_text(self, phone_number: str, text: str) -> None:
        """Deliver a text to a customer. Raises ExternalServiceUnavailable on transport failure."""
        raise NotImplementedError
