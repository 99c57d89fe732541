"""Report creation: draft state, validation and the staged multi-table submit."""
import logging
from dataclasses import dataclass, field, asdict, fields
from functools import partial
from typing import List, Optional
from shared.enums import Bucket, ReportStatus
from shared.models import now
from shared.validation import Validator, ValidationError
from .object_storage import ImageUpload
from .write_plan import WritePlan, WritePlanAborted

logger = logging.getLogger(__name__)

MAX_ACTION_PLANS = 10


def _today():
    return now().date().isoformat()


def _current_time():
    return now().strftime('%H:%M')


@dataclass
class ReportDraft:
    """Editable observation fields; values are kept in wire form (ISO dates, 'HH:MM')."""
    project_id: str = ''
    company_id: str = ''
    submitter_name: str = ''
    date: str = field(default_factory=_today)
    time: str = field(default_factory=_current_time)
    department: str = ''
    location: str = ''
    description: str = ''
    subject: str = ''
    report_group: str = ''
    consequences: str = ''
    likelihood: str = ''
    status: str = ReportStatus.OPEN.value

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def from_row(cls, row):
        return cls(**{name: row.get(name) or '' for name in cls.field_names()})

    def apply(self, changes):
        """Copy known fields from changes; ``None`` leaves a field untouched."""
        for name in self.field_names():
            value = changes.get(name)
            if value is not None:
                setattr(self, name, value.isoformat() if hasattr(value, 'isoformat') else value)
        return self

    def to_dict(self):
        return asdict(self)


@dataclass
class ActionPlanDraft:
    action: str = ''
    due_date: str = ''
    responsible_person: str = ''
    follow_up_contact: str = ''
    status: str = ReportStatus.OPEN.value
    image: Optional[ImageUpload] = None

    @classmethod
    def from_payload(cls, payload, image=None):
        values = {name: payload.get(name) for name in ('action', 'due_date', 'responsible_person',
                                                       'follow_up_contact', 'status')}
        values = {k: (v.isoformat() if hasattr(v, 'isoformat') else v) for k, v in values.items() if v is not None}
        return cls(image=image, **values)

    def values(self):
        return {
            'action': self.action,
            'due_date': self.due_date,
            'responsible_person': self.responsible_person,
            'follow_up_contact': self.follow_up_contact,
            'status': self.status,
        }


def action_plan_limit_error(limit):
    message = f'A report can have at most {limit} action plans'
    return ValidationError(message, {'action_plans': message})


class ActionPlanSubManager:
    """Staging area for action plans of a report that does not exist yet."""

    def __init__(self, max_plans=MAX_ACTION_PLANS):
        self.max_plans = max_plans
        self.pending = ActionPlanDraft()
        self.staged: List[ActionPlanDraft] = []
        self.form_open = False
        self.errors = {}

    def open_form(self):
        self.form_open = True
        self.pending = ActionPlanDraft()
        self.errors = {}

    def close_form(self):
        self.form_open = False
        self.pending = ActionPlanDraft()
        self.errors = {}

    def save_draft(self, add_another=False):
        """Stage the pending draft if its required fields are filled.

        Returns True when staged. With ``add_another`` the sub-form stays open
        on a fresh draft; otherwise it closes.
        """
        errors = Validator.check_action_plan(self.pending.values())
        if len(self.staged) >= self.max_plans:
            errors.update(action_plan_limit_error(self.max_plans).fields)
        self.errors = errors
        if errors:
            return False

        self.staged.append(self.pending)
        self.pending = ActionPlanDraft()
        self.form_open = add_another
        return True

    def remove(self, index):
        return self.staged.pop(index)

    def __len__(self):
        return len(self.staged)


@dataclass
class SubmitResult:
    observation: dict
    failures: list = field(default_factory=list)

    @property
    def observation_id(self):
        return self.observation['id']

    @property
    def detail_url(self):
        return f"/reports/{self.observation_id}"

    def to_dict(self):
        return {
            'id': self.observation_id,
            'detail_url': self.detail_url,
            'warnings': [f.to_dict() for f in self.failures],
        }


class SubmissionFailed(Exception):
    """The image upload or the observation insert failed; nothing dependent was written."""

    def __init__(self, step, error):
        super().__init__(f"Report submission failed at {step}: {error}")
        self.step = step
        self.error = error


class ReportFormController:
    """State and workflow of the new-report form."""

    def __init__(self, store, storage, max_action_plans=MAX_ACTION_PLANS):
        self.store = store
        self.storage = storage
        self.draft = ReportDraft()
        self.action_plan_required = False
        self.action_plans = ActionPlanSubManager(max_action_plans)
        self.selected_categories: List[str] = []
        self.image: Optional[ImageUpload] = None
        self.errors = {}

    def toggle_category(self, category_id):
        if category_id in self.selected_categories:
            self.selected_categories.remove(category_id)
        else:
            self.selected_categories.append(category_id)

    def validate(self):
        """Return {field: message} for every violated rule; an empty dict means submittable."""
        draft = self.draft.to_dict()
        errors = Validator.check_observation(
            draft,
            selected_categories=self.selected_categories,
            action_plan_required=self.action_plan_required,
            staged_plans=len(self.action_plans),
        )
        errors.update(Validator.check_observation_choices(draft))
        self.errors = errors
        return errors

    def save_action_plan_draft(self, add_another=False):
        return self.action_plans.save_draft(add_another)

    def _upload_report_image(self, results):
        if self.image is None:
            return None
        return self.storage.upload(Bucket.OBSERVATION_IMAGES.value, self.image)

    def _create_observation(self, user, results):
        values = self.draft.to_dict()
        values['department'] = values['department'] or None
        values['supporting_image'] = results['upload_image']
        values['corrective_action'] = len(self.action_plans) > 0
        values['created_by'] = getattr(user, 'id', None)
        observation = self.store.insert('observation_details', values)
        logger.info(f"Created observation {observation['id']}")
        return observation

    def _link_categories(self, results):
        observation_id = results['create_observation']['id']
        links = [{'observation_id': observation_id, 'category_id': category_id}
                 for category_id in self.selected_categories]
        return self.store.insert_many('observation_categories', links)

    def _write_action_plan(self, draft, user, results):
        values = draft.values()
        values['observation_id'] = results['create_observation']['id']
        values['created_by'] = getattr(user, 'id', None)
        values['supporting_image'] = (
            self.storage.upload(Bucket.ACTION_PLAN_IMAGES.value, draft.image) if draft.image else None
        )
        return self.store.insert('action_plans', values)

    def submit(self, user=None):
        """Validate, then upload the image, create the observation and write its dependents.

        Raises:
            ValidationError: If the draft is incomplete (nothing is written)
            SubmissionFailed: If the image upload or observation insert fails
        """
        errors = self.validate()
        if errors:
            raise ValidationError('Please fill in all required fields', errors)

        plan = WritePlan('submit report')
        plan.add('upload_image', self._upload_report_image)
        plan.add('create_observation', partial(self._create_observation, user))
        if self.selected_categories:
            plan.add('link_categories', self._link_categories, required=False)
        for index, draft in enumerate(self.action_plans.staged, start=1):
            plan.add(f'action_plan_{index}', partial(self._write_action_plan, draft, user), required=False)

        try:
            outcome = plan.run()
        except WritePlanAborted as e:
            raise SubmissionFailed(e.step, e.error) from e

        return SubmitResult(outcome.results['create_observation'], outcome.failures)
