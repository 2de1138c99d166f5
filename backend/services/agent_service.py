"""
Agent Service

Looks up agent definitions for agent workflow steps.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
import logging

from database import SessionLocal
from models import Agent

logger = logging.getLogger(__name__)


class AgentNotFoundError(LookupError):
    """Raised when an agent does not exist in the organization."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


@dataclass
class AgentDefinition:
    """Detached copy of the agent fields the engine needs."""
    agent_id: str
    type: str
    name: str
    configuration: Dict[str, Any] = field(default_factory=dict)

    @property
    def system_prompt(self) -> Optional[str]:
        return self.configuration.get("systemPrompt")

    @property
    def model(self) -> Optional[str]:
        return self.configuration.get("model")

    @property
    def temperature(self) -> Optional[float]:
        return self.configuration.get("temperature")

    @property
    def max_tokens(self) -> Optional[int]:
        return self.configuration.get("maxTokens")


class AgentService:
    """Service for reading agents within one organization."""

    def __init__(self, db: Session, org_id: str):
        self.db = db
        self.org_id = org_id

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        """Get an agent by ID, scoped to the organization."""
        return self.db.query(Agent).filter(
            Agent.agent_id == agent_id,
            Agent.org_id == self.org_id
        ).first()

    def get_definition(self, agent_id: str) -> Optional[AgentDefinition]:
        """Get the agent as an AgentDefinition, or None."""
        agent = self.get_agent(agent_id)
        if not agent:
            return None
        agent_type = agent.type.value if hasattr(agent.type, "value") else str(agent.type)
        return AgentDefinition(
            agent_id=agent.agent_id,
            type=agent_type,
            name=agent.name,
            configuration=dict(agent.configuration or {}),
        )


def lookup_agent(agent_id: str, org_id: str) -> Optional[AgentDefinition]:
    """Default agent lookup for the workflow engine, using its own session."""
    db = SessionLocal()
    try:
        return AgentService(db, org_id).get_definition(agent_id)
    finally:
        db.close()
