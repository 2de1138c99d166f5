#!/usr/bin/env python3
"""
Migration script to create the agents table.

Agent steps look up their agent definition here by (agent_id, org_id).
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect
from database import engine
from models import Agent, Base
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    return inspect(engine).has_table(table_name)


def migrate_create_agents_table():
    """Create the agents table if it is missing."""
    table_name = Agent.__tablename__
    if table_exists(table_name):
        logger.info(f"{table_name} table already exists, skipping")
        return

    logger.info(f"Creating {table_name} table...")
    Base.metadata.create_all(bind=engine, tables=[Agent.__table__])
    logger.info(f"Created {table_name} table")


if __name__ == "__main__":
    migrate_create_agents_table()
