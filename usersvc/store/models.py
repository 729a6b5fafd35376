"""User service database models."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DBAccount(Base):  # type: ignore
    """
    User account table.

    +-------------------+--------------+------+-----+---------+
    | Field             | Type         | Null | Key | Default |
    +-------------------+--------------+------+-----+---------+
    | uuid              | varchar(26)  | NO   | PRI | NULL    |
    | first_name        | varchar(32)  | NO   |     | NULL    |
    | last_name         | varchar(32)  | NO   |     | NULL    |
    | email             | varchar(320) | NO   | UNI | NULL    |
    | password          | varchar(60)  | NO   |     | NULL    |
    | organization      | varchar(255) | NO   |     | NULL    |
    | created_date      | int(11)      | NO   | MUL | 0       |
    | modified_date     | int(11)      | YES  |     | NULL    |
    | is_verified       | tinyint(1)   | NO   |     | 0       |
    | prospective_email | varchar(320) | YES  | UNI | NULL    |
    +-------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'accounts'

    uuid = Column(String(26), primary_key=True)
    first_name = Column(String(32), nullable=False)
    last_name = Column(String(32), nullable=False)
    email = Column(String(320), nullable=False, unique=True)
    password = Column(String(60), nullable=False)
    organization = Column(String(255), nullable=False)
    created_date = Column(Integer, nullable=False, index=True,
                          server_default=text("'0'"))
    modified_date = Column(Integer, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    prospective_email = Column(String(320), nullable=True, unique=True)

    auth_token = relationship('DBAuthToken', uselist=False,
                              back_populates='account',
                              cascade='all, delete-orphan')
    email_token = relationship('DBEmailToken', uselist=False,
                               back_populates='account',
                               cascade='all, delete-orphan')


class DBSecret(Base):  # type: ignore
    """Every signing secret ever generated, active or superseded."""

    __tablename__ = 'secrets'

    secret_key = Column(String(64), primary_key=True)
    created_timestamp = Column(Integer, nullable=False)
    expiration_timestamp = Column(Integer, nullable=False, index=True)


class DBActiveSecret(Base):  # type: ignore
    """
    Designates the active signing secret.

    The table has exactly one logical row, pinned to ``slot = 1``; rotation
    overwrites it in place.
    """

    __tablename__ = 'active_secret'

    ACTIVE_SLOT = 1

    slot = Column(Integer, primary_key=True, autoincrement=False)
    secret_key = Column(ForeignKey('secrets.secret_key'), nullable=False)

    secret = relationship('DBSecret')


class DBAuthToken(Base):  # type: ignore
    """Auth tokens, one per account, tied to the secret that signed them."""

    __tablename__ = 'auth_tokens'

    token = Column(String(512), primary_key=True)
    uuid = Column(ForeignKey('accounts.uuid'), nullable=False, unique=True)
    secret_key = Column(ForeignKey('secrets.secret_key'), nullable=False)
    created_timestamp = Column(Integer, nullable=False)

    account = relationship('DBAccount', back_populates='auth_token')
    secret = relationship('DBSecret')


class DBEmailToken(Base):  # type: ignore
    """Email-verification tokens, at most one per account."""

    __tablename__ = 'email_tokens'

    token = Column(String(64), primary_key=True)
    uuid = Column(ForeignKey('accounts.uuid'), nullable=False, unique=True)
    created_timestamp = Column(Integer, nullable=False)
    expiration_timestamp = Column(Integer, nullable=False)

    account = relationship('DBAccount', back_populates='email_token')
