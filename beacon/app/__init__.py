"""Agent process: binds and runs both listeners; command-line entry."""

from beacon.app.agent import Agent, AgentError, ListenerBindError, run_agent

__all__ = ["Agent", "AgentError", "ListenerBindError", "run_agent"]
