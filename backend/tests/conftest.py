import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base
from schemas.workflow import WorkflowExecutionContext
from services.agent_service import AgentDefinition
from tests.fakes import FakeAgentLookup, FakeLLM, FakeSleep


@pytest.fixture
def context():
    return WorkflowExecutionContext(
        workflow_id="wf-1",
        run_id="run-1",
        org_id="org-1",
        user_id="user-1",
    )


@pytest.fixture
def research_agent():
    return AgentDefinition(
        agent_id="agent-1",
        type="RESEARCH",
        name="Researcher",
        configuration={"systemPrompt": "Be thorough.", "temperature": 0.2, "maxTokens": 1000},
    )


@pytest.fixture
def agent_lookup(research_agent):
    return FakeAgentLookup(research_agent)


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def db_session():
    """In-memory SQLite session with the engine's tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
