from abc import ABC, abstractmethod
from typing import Any


class AbstractWebhookClient(ABC):
    """Interface for delivering JSON payloads to an operator-configured URL."""

    @abstractmethod
    async def post_json(self, url: str, payload: dict[str, Any]) -> None:
        """POST ``payload`` as JSON to ``url``.

        Raises:
            NotificationAppError: On transport errors or non-2xx responses.
        """
        ...
