from abc import ABC, abstractmethod


class MailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail transport."""


class AbstractMailer(ABC):
    """Interface for the outbound mail transport."""

    @abstractmethod
    async def send_verification_code(self, to: str, code: str) -> None:
        """Send a one-time verification code.

        Raises:
            MailDeliveryError: If the transport is unconfigured or rejects the message.
        """
        ...

    @abstractmethod
    async def send_submission_confirmation(self, to: str, first_name: str, last_name: str) -> None:
        """Confirm to the respondent that their answers were recorded.

        Raises:
            MailDeliveryError: If the transport is unconfigured or rejects the message.
        """
        ...
