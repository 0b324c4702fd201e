from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from exam_cbt.db.database import Base


class ExamRecord(Base):
    __tablename__ = "exam_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    exam_id = Column(String(64), nullable=False)
    score = Column(Float, nullable=False)
    total_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    time_used = Column(Integer, nullable=False)  # 초
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    wrong_questions = relationship(
        "WrongQuestion", back_populates="exam_record", cascade="all, delete-orphan"
    )


class WrongQuestion(Base):
    __tablename__ = "wrong_questions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    exam_record_id = Column(
        Integer, ForeignKey("exam_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(String(100), nullable=False)
    question_type = Column(String(20), nullable=False, index=True)
    question_category = Column(String(100), default="")
    question_text = Column(Text, nullable=False)
    question_options = Column(JSON, nullable=False)
    correct_answer = Column(String(50), nullable=False)
    user_answer = Column(String(50), default="")
    question_score = Column(Float, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    exam_record = relationship("ExamRecord", back_populates="wrong_questions")


class UserStats(Base):
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    total_exams = Column(Integer, default=0, nullable=False)
    total_questions = Column(Integer, default=0, nullable=False)
    total_wrong = Column(Integer, default=0, nullable=False)
    avg_score = Column(Float, default=0.0, nullable=False)
    best_score = Column(Float, default=0.0, nullable=False)
    last_exam_date = Column(DateTime)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
