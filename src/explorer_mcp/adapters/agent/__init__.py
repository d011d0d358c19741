from .client import AgentQueryAdapter

__all__ = ["AgentQueryAdapter"]
