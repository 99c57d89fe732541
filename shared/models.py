import os
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Boolean, Date, DateTime, ForeignKey, Index, Enum
from sqlalchemy.orm import relationship, declarative_base
from shared.enums import ObservationSubject, ReportGroup, Consequence, Likelihood, ReportStatus, UserRole

Base = declarative_base()

# Application timezone; stored datetimes are naive in SQLite and should be read in this zone
from zoneinfo import ZoneInfo
APP_TIMEZONE = ZoneInfo(os.getenv('PORTAL_TIMEZONE', 'UTC'))


def now():
    """Return current datetime in application timezone (timezone-aware)."""
    return datetime.now(APP_TIMEZONE)


def new_id():
    """Primary keys are UUID strings so rows can move between SQL and PostgREST stores."""
    return str(uuid.uuid4())


def enum_column(enum_cls, **kwargs):
    """Enum column persisted by member value (e.g. 'very-likely'), not member name."""
    return Column(
        Enum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False,
             validate_strings=True, name=enum_cls.__name__.lower()),
        **kwargs
    )


class TimestampMixin:
    """Mixin providing creation/update timestamps."""

    created_at = Column(DateTime, default=now)
    updated_at = Column(DateTime, default=now, onupdate=now)


class User(Base, TimestampMixin):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(80), unique=True, nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    full_name = Column(String(200), server_default="")
    password_hash = Column(String(256), nullable=False)
    role = enum_column(UserRole, default=UserRole.USER, nullable=False)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN


class AuthToken(Base):
    __tablename__ = 'auth_tokens'
    token = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(DateTime, default=now)
    user = relationship('User')


class Project(Base, TimestampMixin):
    __tablename__ = 'projects'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)


class Company(Base, TimestampMixin):
    __tablename__ = 'companies'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)


class SafetyCategory(Base, TimestampMixin):
    __tablename__ = 'safety_categories'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False, unique=True)
    icon = Column(String(60), server_default="")
    description = Column(Text, server_default="")


class Observation(Base, TimestampMixin):
    __tablename__ = 'observation_details'
    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey('companies.id'), nullable=False, index=True)
    submitter_name = Column(String(200), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)
    department = Column(String(200))
    location = Column(String(300), nullable=False)
    description = Column(Text, nullable=False)
    subject = enum_column(ObservationSubject, nullable=False)
    report_group = enum_column(ReportGroup, nullable=False)
    consequences = enum_column(Consequence, nullable=False)
    likelihood = enum_column(Likelihood, nullable=False)
    status = enum_column(ReportStatus, default=ReportStatus.OPEN, nullable=False)
    corrective_action = Column(Boolean, default=False, nullable=False)
    supporting_image = Column(Text)
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), index=True)

    project = relationship('Project', lazy='joined')
    company = relationship('Company', lazy='joined')

    __table_args__ = (
        Index('idx_observation_date', 'date'),
        Index('idx_observation_created_at', 'created_at'),
    )


class ObservationCategory(Base):
    __tablename__ = 'observation_categories'
    observation_id = Column(String(36), ForeignKey('observation_details.id', ondelete='CASCADE'), primary_key=True)
    category_id = Column(String(36), ForeignKey('safety_categories.id', ondelete='CASCADE'), primary_key=True)
    created_at = Column(DateTime, default=now)


class ActionPlan(Base, TimestampMixin):
    __tablename__ = 'action_plans'
    id = Column(String(36), primary_key=True, default=new_id)
    observation_id = Column(String(36), ForeignKey('observation_details.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    action = Column(Text, nullable=False)
    due_date = Column(Date, nullable=False)
    responsible_person = Column(String(200), nullable=False)
    follow_up_contact = Column(String(200), nullable=False)
    status = enum_column(ReportStatus, default=ReportStatus.OPEN, nullable=False)
    supporting_image = Column(Text)
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'))


# Table name -> model, used by the generic data store
TABLES = {
    model.__tablename__: model
    for model in (User, Project, Company, SafetyCategory, Observation, ObservationCategory, ActionPlan)
}
