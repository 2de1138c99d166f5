"""
Workflow Engine Database Models

Only the entities the workflow engine reads are modelled here.
Core entities: Agents
"""

from sqlalchemy import Column, String, Text, DateTime, JSON, Enum
from sqlalchemy.orm import declarative_base
from datetime import datetime
from enum import Enum as PyEnum
import uuid


class AgentType(str, PyEnum):
    """Kinds of agents an organization can define"""
    RESEARCH = "RESEARCH"
    ANALYSIS = "ANALYSIS"
    REPORTING = "REPORTING"
    MONITORING = "MONITORING"
    CUSTOM = "CUSTOM"


class AgentStatus(str, PyEnum):
    """Lifecycle status of an agent definition"""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class Agent(Base):
    """An agent definition scoped to an organization"""
    __tablename__ = "agents"

    agent_id = Column(String(64), primary_key=True, default=_new_id)
    org_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(AgentType, name='agenttype'), nullable=False, default=AgentType.CUSTOM)
    status = Column(Enum(AgentStatus, name='agentstatus'), nullable=False, default=AgentStatus.DRAFT)

    # systemPrompt, model, temperature, maxTokens and anything else the UI stores
    configuration = Column(JSON, default=dict)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
