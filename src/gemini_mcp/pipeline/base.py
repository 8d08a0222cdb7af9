"""Base protocol for pipeline handlers."""

from typing import Protocol, TypeVar

from gemini_mcp.core.types import Result
from gemini_mcp.exceptions import GeminiMCPError

# Contravariant input (handlers can accept supertypes), invariant output
T_In = TypeVar("T_In", contravariant=True)
T_Out = TypeVar("T_Out")
T_Error = TypeVar("T_Error", bound=GeminiMCPError)


class BaseAsyncHandler(Protocol[T_In, T_Out, T_Error]):
    """Protocol for asynchronous tool handlers.

    Each handler turns one typed tool request into a result, making it easy
    to test and reason about.
    """

    async def handle(self, command: T_In) -> Result[T_Out, T_Error]:
        """Process a tool request.

        Args:
            command: The typed request decoded at the protocol boundary.

        Returns:
            A Result object containing either the tool output or an error.
        """
        ...
