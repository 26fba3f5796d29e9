"""Application-wide Flask extensions."""

from flask_sqlalchemy import SQLAlchemy


# Backs the server-side session table. The engine is configured in
# :func:`student_records.create_app` from the deployment environment.
db = SQLAlchemy()
