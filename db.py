import logging
import os
import uuid
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

logger = logging.getLogger(__name__)


# Detect environment: Streamlit Cloud uses PostgreSQL, local uses SQLite
def get_database_url():
    """
    Get database URL based on environment.

    Streamlit Cloud: Uses PostgreSQL from secrets
    Other hosts: DATABASE_URL environment variable
    Local: Uses SQLite file
    """
    try:
        import streamlit as st
        if hasattr(st, 'secrets') and 'connections' in st.secrets and 'workout_db' in st.secrets.connections:
            db_secrets = st.secrets.connections.workout_db
            url = f"postgresql://{db_secrets.username}:{db_secrets.password}@{db_secrets.host}:{db_secrets.port}/{db_secrets.database}"
            logger.info("Using PostgreSQL database (Streamlit secrets)")
            return url
    except Exception as e:
        logger.debug("Not using Streamlit secrets: %s", e)

    if 'DATABASE_URL' in os.environ:
        url = os.environ['DATABASE_URL']
        # Fix for some platforms that use postgres:// instead of postgresql://
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql://', 1)
        logger.info("Using database from DATABASE_URL environment variable")
        return url

    logger.info("Using SQLite database: %s", DB_FILE)
    return f"sqlite:///{DB_FILE}"


DB_FILE = "training.db"

DATABASE_URL = get_database_url()

if DATABASE_URL.startswith('postgresql'):
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
    )
else:
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )

SessionLocal = sessionmaker(bind=engine)

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


# ----------------- reference data -----------------

class Muscle(Base):
    __tablename__ = "muscles"
    key = Column(String, primary_key=True)
    display_name = Column(String, nullable=False)
    group = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Exercise(Base):
    """Master catalog entry. Read-only for users; tweaks go in overrides."""
    __tablename__ = "exercises"
    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    density_score = Column(Float, nullable=False, default=5.0)
    primary_muscles = Column(JSON, nullable=False, default=list)
    secondary_muscles = Column(JSON, nullable=True)
    implicit_hits = Column(JSON, nullable=False, default=dict)  # muscle_key -> activation
    is_unilateral = Column(Boolean, nullable=False, default=False)
    setup_buffer_sec = Column(Integer, nullable=False, default=60)
    avg_time_per_set_sec = Column(Integer, nullable=False, default=120)  # includes rest
    is_timed = Column(Boolean, nullable=False, default=False)
    equipment_needed = Column(JSON, nullable=True)
    movement_pattern = Column(String, nullable=True)
    tempo_category = Column(String, nullable=True)

    prescriptions = relationship("ExercisePrescription", back_populates="exercise")


class ExercisePrescription(Base):
    __tablename__ = "exercise_prescriptions"
    __table_args__ = (UniqueConstraint("exercise_id", "experience", "mode"),)

    id = Column(Integer, primary_key=True)
    exercise_id = Column(String, ForeignKey("exercises.id"), nullable=False)
    experience = Column(String, nullable=False)
    mode = Column(String, nullable=False)  # "reps" | "timed"
    sets_min = Column(Integer, nullable=False)
    sets_max = Column(Integer, nullable=False)
    reps_min = Column(Integer, nullable=True)
    reps_max = Column(Integer, nullable=True)
    duration_sec_min = Column(Integer, nullable=True)
    duration_sec_max = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    source_notes = Column(String, nullable=True)

    exercise = relationship("Exercise", back_populates="prescriptions")


class AIRecommendedExercise(Base):
    """Allow-list of exercises the generator may pick, lower priority_order first."""
    __tablename__ = "ai_recommended_exercises"
    exercise_id = Column(String, ForeignKey("exercises.id"), primary_key=True)
    is_active = Column(Boolean, nullable=False, default=True)
    priority_order = Column(Integer, nullable=True)
    notes = Column(String, nullable=True)


# ----------------- per-user data -----------------

class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String, primary_key=True)  # user id
    full_name = Column(String, nullable=True)
    experience_level = Column(String, nullable=True)


class UserExerciseOverride(Base):
    __tablename__ = "user_exercise_overrides"
    user_id = Column(String, primary_key=True)
    exercise_id = Column(String, ForeignKey("exercises.id"), primary_key=True)

    # NULL means "use the master value"
    density_score_override = Column(Float, nullable=True)
    primary_muscles_override = Column(JSON, nullable=True)
    implicit_hits_override = Column(JSON, nullable=True)
    is_unilateral_override = Column(Boolean, nullable=True)
    setup_buffer_sec_override = Column(Integer, nullable=True)
    avg_time_per_set_sec_override = Column(Integer, nullable=True)
    is_timed_override = Column(Boolean, nullable=True)


class UserCustomExercise(Base):
    __tablename__ = "user_custom_exercises"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    density_score = Column(Float, nullable=False, default=5.0)
    primary_muscles = Column(JSON, nullable=False, default=list)
    secondary_muscles = Column(JSON, nullable=True)
    implicit_hits = Column(JSON, nullable=False, default=dict)
    is_unilateral = Column(Boolean, nullable=False, default=False)
    setup_buffer_sec = Column(Integer, nullable=False, default=60)
    avg_time_per_set_sec = Column(Integer, nullable=False, default=120)
    is_timed = Column(Boolean, nullable=False, default=False)
    equipment_needed = Column(JSON, nullable=True)
    movement_pattern = Column(String, nullable=True)
    tempo_category = Column(String, nullable=True)

    # Custom exercises carry their own target band (nullable for legacy rows)
    mode = Column(String, nullable=True)
    sets_min = Column(Integer, nullable=True)
    sets_max = Column(Integer, nullable=True)
    reps_min = Column(Integer, nullable=True)
    reps_max = Column(Integer, nullable=True)
    duration_sec_min = Column(Integer, nullable=True)
    duration_sec_max = Column(Integer, nullable=True)


# ----------------- planning -----------------

class WorkoutTemplate(Base):
    __tablename__ = "workout_templates"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="Weekly Plan")
    is_active = Column(Boolean, nullable=False, default=True)

    days = relationship("TemplateDay", back_populates="template", order_by="TemplateDay.sort_order")


class TemplateDay(Base):
    __tablename__ = "template_days"
    __table_args__ = (UniqueConstraint("template_id", "day_name"),)

    id = Column(String, primary_key=True, default=new_id)
    template_id = Column(String, ForeignKey("workout_templates.id"), nullable=False)
    day_name = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    template = relationship("WorkoutTemplate", back_populates="days")
    slots = relationship(
        "TemplateSlot",
        back_populates="day",
        order_by="TemplateSlot.sort_order",
        cascade="all, delete-orphan",
    )


class TemplateSlot(Base):
    __tablename__ = "template_slots"
    id = Column(String, primary_key=True, default=new_id)
    day_id = Column(String, ForeignKey("template_days.id"), nullable=False)
    exercise_id = Column(String, ForeignKey("exercises.id"), nullable=True)
    custom_exercise_id = Column(String, ForeignKey("user_custom_exercises.id"), nullable=True)
    sort_order = Column(Integer, nullable=False)
    mode = Column(String, nullable=True)
    target_sets = Column(Integer, nullable=True)
    target_reps = Column(Integer, nullable=True)
    target_duration_sec = Column(Integer, nullable=True)
    target_weight = Column(Float, nullable=True)

    day = relationship("TemplateDay", back_populates="slots")


# ----------------- performed truth -----------------

class WorkoutSession(Base):
    __tablename__ = "workout_sessions"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    template_id = Column(String, ForeignKey("workout_templates.id"), nullable=True)
    day_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")  # active | completed | abandoned
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    exercises = relationship(
        "SessionExercise",
        back_populates="session",
        order_by="SessionExercise.sort_order",
    )


class SessionExercise(Base):
    __tablename__ = "session_exercises"
    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("workout_sessions.id"), nullable=False)
    exercise_id = Column(String, ForeignKey("exercises.id"), nullable=True)
    custom_exercise_id = Column(String, ForeignKey("user_custom_exercises.id"), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    session = relationship("WorkoutSession", back_populates="exercises")
    sets = relationship("SessionSet", back_populates="session_exercise", order_by="SessionSet.set_number")


class SessionSet(Base):
    __tablename__ = "session_sets"
    id = Column(Integer, primary_key=True)
    session_exercise_id = Column(String, ForeignKey("session_exercises.id"), nullable=False)
    set_number = Column(Integer, nullable=False)
    reps = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)
    rpe = Column(Float, nullable=True)
    rir = Column(Float, nullable=True)
    duration_sec = Column(Integer, nullable=True)
    performed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    session_exercise = relationship("SessionExercise", back_populates="sets")


# Derived cache, rebuildable from session_sets (see services.complete_session)
class DailyMuscleStress(Base):
    __tablename__ = "daily_muscle_stress"
    user_id = Column(String, primary_key=True)
    date = Column(Date, primary_key=True)
    muscle_key = Column(String, primary_key=True)
    stress = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


def init_db():
    """
    Initialize database tables ONLY if they don't exist.
    Does NOT modify existing tables (preserves data). Column changes
    go through the alembic migrations.
    """
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Error creating database tables")
        raise


# Make sure tables exist even if init_db.py isn't run
init_db()


@contextmanager
def get_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
