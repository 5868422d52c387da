"""Profile database models."""

from sqlalchemy import Column, DateTime, String, Text, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DBProfile(Base):  # type: ignore
    """
    Application profile table, one row per identity.

    +-------------+--------------+------+-----+---------+
    | Field       | Type         | Null | Key | Default |
    +-------------+--------------+------+-----+---------+
    | id          | varchar(36)  | NO   | PRI | NULL    |
    | username    | varchar(64)  | NO   | MUL |         |
    | full_name   | varchar(255) | NO   |     |         |
    | bio         | text         | NO   |     | NULL    |
    | location    | varchar(255) | NO   |     |         |
    | website     | varchar(255) | NO   |     |         |
    | avatar_url  | varchar(512) | NO   |     |         |
    | updated_at  | datetime     | YES  |     | NULL    |
    +-------------+--------------+------+-----+---------+
    """

    __tablename__ = 'profiles'

    id = Column(String(36), primary_key=True)
    username = Column(String(64), nullable=False, index=True,
                      server_default=text("''"))
    full_name = Column(String(255), nullable=False, server_default=text("''"))
    bio = Column(Text, nullable=False, default='')
    location = Column(String(255), nullable=False, server_default=text("''"))
    website = Column(String(255), nullable=False, server_default=text("''"))
    avatar_url = Column(String(512), nullable=False,
                        server_default=text("''"))
    updated_at = Column(DateTime(timezone=True))
