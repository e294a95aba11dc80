# Overview: Shared Flask extension instances (SQLAlchemy session, Alembic migrations).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# Money and rate columns are integers; compare_type catches a column drifting to Numeric
migrate = Migrate(compare_type=True, render_as_batch=True)
