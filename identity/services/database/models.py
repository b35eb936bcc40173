"""Identity service database models."""

import uuid

from sqlalchemy import Column, DateTime, String
from flask_sqlalchemy import SQLAlchemy

db: SQLAlchemy = SQLAlchemy()


def _new_id() -> str:
    return str(uuid.uuid4())


class DBAccount(db.Model):
    """
    Activated accounts.

        +-------------------+--------------+------+-----+
        | Field             | Type         | Null | Key |
        +-------------------+--------------+------+-----+
        | id                | varchar(36)  | NO   | PRI |
        | email             | varchar(100) | NO   | UNI |
        | password_hash     | varchar(255) | NO   |     |
        | registration_date | datetime     | NO   |     |
        +-------------------+--------------+------+-----+
    """

    __tablename__ = 'accounts'

    id = Column(String(36), primary_key=True, default=_new_id)
    """Server-generated opaque identifier; never reused."""
    email = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    registration_date = Column(DateTime(timezone=True), nullable=False)
    """UTC time of activation."""
