# allocation_engine/db/base.py

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Register optimization_runs and recommendation_decisions on Base.metadata
# so create_all and alembic autogenerate see them.

from allocation_engine.db import models  # noqa: F401,E402
