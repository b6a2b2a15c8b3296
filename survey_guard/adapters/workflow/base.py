from abc import ABC, abstractmethod
from typing import Any


class AbstractWorkflowClient(ABC):
	"""Interface for the external workflow that persists survey answers."""

	@abstractmethod
	async def submit(self, payload: dict[str, Any]) -> dict[str, Any]:
		"""Hand a validated submission to the workflow backend.

		Args:
			payload: JSON body expected by the workflow trigger.

		Returns:
			dict[str, Any]: JSON body returned by the workflow (may be empty).

		Raises:
			UpstreamAppError: If the workflow is unreachable, unconfigured or
				answers with a non-2xx status.
		"""
		...
