from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(database_url: str):
    """
    SQLAlchemy 엔진 생성.
    SQLite 는 스레드 간 공유를 허용하고, 인메모리 DB 는 단일 커넥션(StaticPool)으로 유지한다.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    """테이블/인덱스 생성 (이미 있으면 건너뜀)."""
    # 모델 모듈을 import 해야 Base.metadata 에 테이블이 등록된다
    from exam_cbt.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
