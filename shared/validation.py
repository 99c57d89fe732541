"""Input validation utilities."""
import os
import bleach
from shared.enums import ObservationSubject, ReportGroup, Consequence, Likelihood, ReportStatus


class ValidationError(Exception):
    """Raised when input validation fails.

    ``fields`` maps each offending field to a user-facing message; it is empty
    for errors that are not tied to a single field.
    """

    def __init__(self, message, fields=None):
        super().__init__(message)
        self.fields = dict(fields or {})


# Required observation fields and the message shown when each is missing
OBSERVATION_REQUIRED_FIELDS = {
    'project_id': 'Project is required',
    'company_id': 'Company is required',
    'submitter_name': 'Submitter name is required',
    'date': 'Date is required',
    'time': 'Time is required',
    'location': 'Location is required',
    'description': 'Description is required',
    'report_group': 'Report group is required',
    'consequences': 'Consequences is required',
    'likelihood': 'Likelihood is required',
    'subject': 'Subject is required',
}

ACTION_PLAN_REQUIRED_FIELDS = {
    'action': 'Action is required',
    'due_date': 'Due date is required',
    'responsible_person': 'Responsible person is required',
    'follow_up_contact': 'Follow-up contact is required',
}

OBSERVATION_CHOICES = {
    'subject': ObservationSubject,
    'report_group': ReportGroup,
    'consequences': Consequence,
    'likelihood': Likelihood,
    'status': ReportStatus,
}

ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
ALLOWED_IMAGE_MIME_TYPES = {'image/png', 'image/jpeg', 'image/gif', 'image/webp'}


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


class Validator:
    """Input validation utilities."""

    @staticmethod
    def validate_choice(value, field_name, valid_choices):
        """Validate that value is in list of valid choices."""
        if value not in valid_choices:
            message = f"{field_name} must be one of: {', '.join(str(c) for c in valid_choices)}"
            raise ValidationError(message, {field_name: message})
        return value

    @staticmethod
    def sanitize_html(text):
        """Strip markup from free-text fields using bleach."""
        if not text:
            return text

        # Plain text needs no parsing
        if '<' not in text and '>' not in text and '&' not in text:
            return text

        allowed_tags = ['p', 'br', 'strong', 'em', 'u', 'ul', 'ol', 'li']
        return bleach.clean(text, tags=allowed_tags, attributes={}, strip=True)

    @staticmethod
    def missing_fields(data, required):
        """Return {field: message} for each required field that is blank in data."""
        return {field: message for field, message in required.items() if _is_blank(data.get(field))}

    @staticmethod
    def check_observation(data, selected_categories=None, action_plan_required=False, staged_plans=0):
        """Collect every violation of the observation create/edit rules.

        Presence checks only; values of enum fields are checked with
        ``check_observation_choices``.
        """
        errors = Validator.missing_fields(data, OBSERVATION_REQUIRED_FIELDS)
        if selected_categories is not None and not selected_categories:
            errors['categories'] = 'At least one safety category is required'
        if action_plan_required and staged_plans == 0:
            errors['action_plans'] = 'At least one action plan is required'
        return errors

    @staticmethod
    def check_observation_choices(data):
        """Return {field: message} for enum fields holding values outside their set."""
        errors = {}
        for field, enum_cls in OBSERVATION_CHOICES.items():
            value = data.get(field)
            if _is_blank(value):
                continue
            valid = [member.value for member in enum_cls]
            if value not in valid:
                errors[field] = f"Invalid {field.replace('_', ' ')} value: {value}"
        return errors

    @staticmethod
    def check_action_plan(data):
        """Return {field: message} for a pending action plan draft."""
        return Validator.missing_fields(data, ACTION_PLAN_REQUIRED_FIELDS)

    @staticmethod
    def validate_image_upload(filename, content_type, size, max_bytes):
        """Validate an uploaded image's extension, MIME type and size."""
        if not filename:
            raise ValidationError('Image file name is required', {'image': 'Image file name is required'})

        ext = os.path.splitext(filename)[1].lower().lstrip('.')
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            message = f"Invalid file type. Allowed types: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
            raise ValidationError(message, {'image': message})

        if content_type and content_type not in ALLOWED_IMAGE_MIME_TYPES:
            message = f"Invalid MIME type: {content_type}"
            raise ValidationError(message, {'image': message})

        if size > max_bytes:
            message = f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
            raise ValidationError(message, {'image': message})

        if size == 0:
            raise ValidationError('Uploaded image is empty', {'image': 'Uploaded image is empty'})
