from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Float, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	name = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserAccount(Base):
	__tablename__ = "user_accounts"
	# Stable user identifier handed out by the auth layer
	username = Column(String(128), primary_key=True, index=True)
	# Null until a diagnostic or the first completed module sets it
	current_level_id = Column(Integer, ForeignKey("levels.id"), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	current_level = relationship("Level")


class Level(Base):
	__tablename__ = "levels"
	id = Column(Integer, primary_key=True, autoincrement=True)
	title = Column(String(128), nullable=False)
	description = Column(Text, nullable=True)
	order = Column(Integer, nullable=False, unique=True)

	modules = relationship("Module", back_populates="level", order_by="Module.order")


class Module(Base):
	__tablename__ = "modules"
	__table_args__ = (UniqueConstraint("level_id", "order", name="uq_modules_level_order"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	level_id = Column(Integer, ForeignKey("levels.id"), nullable=True, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	order = Column(Integer, nullable=False)

	level = relationship("Level", back_populates="modules")
	content_items = relationship("ContentItem", back_populates="module", order_by="ContentItem.order")
	quiz = relationship("Quiz", back_populates="module", uselist=False)


class ContentItem(Base):
	__tablename__ = "content_items"
	__table_args__ = (UniqueConstraint("module_id", "order", name="uq_content_items_module_order"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	content = Column(Text, nullable=False)
	type = Column(String(32), default="text", nullable=False)
	order = Column(Integer, nullable=False)

	module = relationship("Module", back_populates="content_items")


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# One quiz per module
	module_id = Column(Integer, ForeignKey("modules.id"), nullable=True, unique=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)

	module = relationship("Module", back_populates="quiz")
	questions = relationship("QuizQuestion", back_populates="quiz", order_by="QuizQuestion.order")


class QuizQuestion(Base):
	__tablename__ = "quiz_questions"
	# Concurrent first fetches race on this constraint; the loser re-reads
	__table_args__ = (UniqueConstraint("quiz_id", "order", name="uq_quiz_questions_quiz_order"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)
	question = Column(Text, nullable=False)
	type = Column(String(32), default="multiple_choice", nullable=False)
	options = Column(JSON, nullable=False)
	correct_answer = Column(Text, nullable=False)
	order = Column(Integer, nullable=False)

	quiz = relationship("Quiz", back_populates="questions")


class UserQuizAttempt(Base):
	__tablename__ = "user_quiz_attempts"
	# Append-only: one row per submission, never updated
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)
	score = Column(Float, nullable=False)
	answers = Column(JSON, nullable=False)  # per-question result snapshot
	completed = Column(Boolean, default=True, nullable=False)
	completed_at = Column(DateTime, default=datetime.utcnow, nullable=True)

	user_answers = relationship("UserAnswer", back_populates="attempt")


class UserAnswer(Base):
	__tablename__ = "user_answers"
	id = Column(Integer, primary_key=True, autoincrement=True)
	attempt_id = Column(Integer, ForeignKey("user_quiz_attempts.id"), nullable=False, index=True)
	question_id = Column(Integer, ForeignKey("quiz_questions.id"), nullable=False)
	user_answer = Column(Text, nullable=True)
	is_correct = Column(Boolean, nullable=False)
	# Back-link to ai_feedback.id; plain column to keep the two tables acyclic
	ai_feedback_id = Column(Integer, nullable=True)

	attempt = relationship("UserQuizAttempt", back_populates="user_answers")


class AiFeedback(Base):
	__tablename__ = "ai_feedback"
	id = Column(Integer, primary_key=True, autoincrement=True)
	answer_id = Column(Integer, ForeignKey("user_answers.id"), nullable=False, unique=True)
	feedback = Column(Text, nullable=False)
	explanation = Column(Text, nullable=False)


class UserModuleProgress(Base):
	__tablename__ = "user_module_progress"
	__table_args__ = (UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	module_id = Column(Integer, ForeignKey("modules.id"), nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	# Best score ever achieved, 0..1
	progress = Column(Float, default=0.0, nullable=False)
	unlocked = Column(Boolean, default=False, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	module = relationship("Module")


class UserLevelStatus(Base):
	__tablename__ = "user_level_status"
	__table_args__ = (UniqueConstraint("user_id", "level_id", name="uq_user_level_status"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	level_id = Column(Integer, ForeignKey("levels.id"), nullable=False)
	unlocked = Column(Boolean, default=False, nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	level = relationship("Level")
