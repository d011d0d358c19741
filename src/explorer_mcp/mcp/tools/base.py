from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class MCPTool(ABC):
    """Minimal interface shared by the tool implementations behind the server."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    def get_parameter_schema(self) -> dict[str, Any]:
        ...

    @abstractmethod
    def execute(self, **kwargs: Any) -> dict[str, Any]:
        ...
