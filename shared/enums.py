import enum


class ObservationSubject(str, enum.Enum):
    """Subject of a safety observation.

    Used in Observation model to classify how the observation was raised.
    """
    SITE_VISIT = "SOSV : Safety Observation Site Visit"
    SOP = "SOP"
    RES = "RES"


class ReportGroup(str, enum.Enum):
    """Organisational group an observation is filed under."""
    OPERATIONS = "operations"
    MAINTENANCE = "maintenance"
    SAFETY = "safety"
    CONTRACTORS = "contractors"


class _RankedEnum(str, enum.Enum):
    """String enum whose declaration order is its severity order."""

    @property
    def rank(self):
        return list(type(self)).index(self)

    @classmethod
    def ranks(cls):
        return {member.value: member.rank for member in cls}


class Consequence(_RankedEnum):
    """Consequence scale, ordered from least to most severe.

    Shown as "Severity" in tables and exports.
    """
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SEVERE = "severe"


class Likelihood(_RankedEnum):
    """Likelihood scale, ordered from least to most likely."""
    UNLIKELY = "unlikely"
    POSSIBLE = "possible"
    LIKELY = "likely"
    VERY_LIKELY = "very-likely"


class ReportStatus(str, enum.Enum):
    """Status values shared by observations and action plans."""
    OPEN = "open"
    CLOSED = "closed"


class UserRole(str, enum.Enum):
    """User roles for access control."""
    ADMIN = "admin"
    USER = "user"


class Bucket(str, enum.Enum):
    """Object storage buckets; each stored image belongs to exactly one owner kind."""
    OBSERVATION_IMAGES = "safety-images"
    ACTION_PLAN_IMAGES = "action-plan-images"
