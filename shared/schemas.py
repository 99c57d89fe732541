"""Pydantic schemas for validation and serialization."""
import datetime as dt
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, ConfigDict
from shared.enums import ObservationSubject, ReportGroup, Consequence, Likelihood, ReportStatus, UserRole
from shared.validation import Validator


def sanitize_html(text: Optional[str]) -> Optional[str]:
    return Validator.sanitize_html(text)


def _strip_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError('name must not be blank')
    return v


# Reference data schemas
class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _strip_name(v)


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _strip_name(v) if v is not None else v


class ProjectResponse(ProjectBase):
    id: str
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CompanyCreate(ProjectCreate):
    pass


class CompanyUpdate(ProjectUpdate):
    pass


class CompanyResponse(ProjectResponse):
    pass


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    icon: Optional[str] = Field(default="", max_length=60)
    description: Optional[str] = Field(default="", max_length=1000)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _strip_name(v)

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return sanitize_html(v) if v else (v or "")


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    icon: Optional[str] = Field(None, max_length=60)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _strip_name(v) if v is not None else v

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return sanitize_html(v) if v else v


class CategoryResponse(CategoryBase):
    id: str
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Observation payloads. Every field is optional here: presence is checked by
# Validator.check_observation so that all missing fields are reported together.
class ObservationPayload(BaseModel):
    project_id: Optional[str] = None
    company_id: Optional[str] = None
    submitter_name: Optional[str] = Field(None, max_length=200)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(None, pattern=r'^\d{2}:\d{2}(:\d{2})?$')
    department: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = None
    subject: Optional[str] = None
    report_group: Optional[str] = None
    consequences: Optional[str] = None
    likelihood: Optional[str] = None
    status: Optional[str] = None
    categories: Optional[List[str]] = None
    action_plan_required: bool = False

    @field_validator('submitter_name', 'department', 'location', 'description')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_html(v.strip()) if v else v

    @field_validator('date', 'time', mode='before')
    @classmethod
    def blank_date_is_missing(cls, v):
        return v or None

    @field_validator('time')
    @classmethod
    def truncate_seconds(cls, v):
        return v[:5] if v else v


class ActionPlanPayload(BaseModel):
    action: Optional[str] = None
    due_date: Optional[dt.date] = None
    responsible_person: Optional[str] = Field(None, max_length=200)
    follow_up_contact: Optional[str] = Field(None, max_length=200)
    status: ReportStatus = ReportStatus.OPEN

    @field_validator('due_date', mode='before')
    @classmethod
    def blank_date_is_missing(cls, v):
        return v or None

    @field_validator('action', 'responsible_person', 'follow_up_contact')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_html(v.strip()) if v else v

    model_config = ConfigDict(use_enum_values=True)


class ActionPlanUpdate(BaseModel):
    action: Optional[str] = None
    due_date: Optional[dt.date] = None
    responsible_person: Optional[str] = Field(None, max_length=200)
    follow_up_contact: Optional[str] = Field(None, max_length=200)
    status: Optional[ReportStatus] = None

    @field_validator('action', 'responsible_person', 'follow_up_contact')
    @classmethod
    def reject_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError('must not be blank')
        return sanitize_html(v.strip()) if v else v

    model_config = ConfigDict(use_enum_values=True)


# Users
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=80)
    email: str = Field(..., min_length=3, max_length=120, pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    password: str = Field(..., min_length=8, max_length=200)
    full_name: Optional[str] = Field(default="", max_length=200)


class UserRoleUpdate(BaseModel):
    role: UserRole

    model_config = ConfigDict(use_enum_values=True)


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    full_name: Optional[str] = ""
    role: UserRole
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(use_enum_values=True, from_attributes=True)


# Choice values used by the report form selectors
SUBJECT_CHOICES = [s.value for s in ObservationSubject]
REPORT_GROUP_CHOICES = [g.value for g in ReportGroup]
CONSEQUENCE_CHOICES = [c.value for c in Consequence]
LIKELIHOOD_CHOICES = [lk.value for lk in Likelihood]
STATUS_CHOICES = [s.value for s in ReportStatus]
