from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from supportchat.settings import DATABASE_URL

Base = declarative_base()


def make_engine(url: str = DATABASE_URL, **kwargs):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True, **kwargs)


def make_session_factory(bind) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)
