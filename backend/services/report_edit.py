"""Viewing and editing an existing report and its action plans."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from shared.enums import Bucket, ReportStatus
from shared.validation import Validator, ValidationError, OBSERVATION_REQUIRED_FIELDS
from .report_form import ReportDraft, ActionPlanDraft, MAX_ACTION_PLANS, action_plan_limit_error
from .store import Filter, NotFoundError, eq

logger = logging.getLogger(__name__)

OBSERVATION_EMBED = {'projects': ('name',), 'companies': ('name',)}


class ConfirmationRequired(Exception):
    """A destructive action was requested without explicit confirmation."""

    def __init__(self, message, summary=None):
        super().__init__(message)
        self.summary = summary or {}


class ReportEditController:
    """Loads one observation with its plans and category links; writes changes immediately."""

    def __init__(self, store, storage, observation_id, max_action_plans=MAX_ACTION_PLANS):
        self.store = store
        self.storage = storage
        self.observation_id = observation_id
        self.max_action_plans = max_action_plans
        self.observation: Optional[dict] = None
        self.draft: Optional[ReportDraft] = None
        self.action_plans: List[dict] = []
        self.selected_categories: List[str] = []
        self.editing_plan_id: Optional[str] = None
        self.errors = {}

    def load(self):
        """Read the observation, its action plans and its category links concurrently."""
        by_observation = [eq('observation_id', self.observation_id)]
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix='report-load') as pool:
            observation_future = pool.submit(self.store.get, 'observation_details', self.observation_id,
                                             OBSERVATION_EMBED)
            plans_future = pool.submit(self.store.select, 'action_plans', by_observation, 'created_at')
            links_future = pool.submit(self.store.select, 'observation_categories', by_observation)
            observation = observation_future.result()
            plans = plans_future.result()
            links = links_future.result()

        if observation is None:
            raise NotFoundError(f"Report {self.observation_id} not found")

        self.observation = observation
        self.draft = ReportDraft.from_row(observation)
        self.action_plans = plans
        self.selected_categories = [link['category_id'] for link in links]
        logger.debug(f"Loaded report {self.observation_id} with {len(plans)} action plan(s)")
        return self

    def _require_loaded(self):
        if self.observation is None:
            self.load()

    def update(self, changes, categories=None, image=None):
        """Write changed fields; closing the report closes all of its action plans.

        Category links are replaced (delete all, insert new) only when
        ``categories`` is non-empty. Returns a summary of what was written.
        """
        self._require_loaded()
        draft = ReportDraft.from_row(self.observation).apply(changes)
        values = draft.to_dict()

        errors = Validator.missing_fields(values, OBSERVATION_REQUIRED_FIELDS)
        errors.update(Validator.check_observation_choices(values))
        self.errors = errors
        if errors:
            raise ValidationError('Please correct the highlighted fields', errors)

        values['department'] = values['department'] or None
        if image is not None:
            values['supporting_image'] = self.storage.upload(Bucket.OBSERVATION_IMAGES.value, image)

        changed = {k: v for k, v in values.items() if self.observation.get(k) != v}
        summary = {'updated_fields': sorted(changed), 'closed_action_plans': 0, 'categories_replaced': False}
        if changed:
            self.store.update('observation_details', [eq('id', self.observation_id)], changed)

        was_closed = self.observation.get('status') == ReportStatus.CLOSED.value
        if values['status'] == ReportStatus.CLOSED.value and not was_closed:
            summary['closed_action_plans'] = self.store.update(
                'action_plans', [eq('observation_id', self.observation_id)],
                {'status': ReportStatus.CLOSED.value})
            for plan in self.action_plans:
                plan['status'] = ReportStatus.CLOSED.value
            logger.info(f"Report {self.observation_id} closed; closed {summary['closed_action_plans']} action plan(s)")

        if categories:
            self.store.delete('observation_categories', [eq('observation_id', self.observation_id)])
            self.store.insert_many('observation_categories', [
                {'observation_id': self.observation_id, 'category_id': category_id}
                for category_id in dict.fromkeys(categories)
            ])
            self.selected_categories = list(dict.fromkeys(categories))
            summary['categories_replaced'] = True

        self.observation.update(values)
        if changed.keys() & {'project_id', 'company_id'}:
            # Embedded project/company names must follow the new foreign keys
            refreshed = self.store.get('observation_details', self.observation_id, OBSERVATION_EMBED)
            if refreshed is not None:
                self.observation = refreshed
        self.draft = draft
        return summary

    def _plan(self, plan_id):
        for plan in self.action_plans:
            if plan['id'] == plan_id:
                return plan
        raise NotFoundError(f"Action plan {plan_id} not found on report {self.observation_id}")

    def add_action_plan(self, draft: ActionPlanDraft, user=None):
        self._require_loaded()
        if len(self.action_plans) >= self.max_action_plans:
            raise action_plan_limit_error(self.max_action_plans)
        errors = Validator.check_action_plan(draft.values())
        if errors:
            raise ValidationError('Please fill in all required action plan fields', errors)

        values = draft.values()
        values['observation_id'] = self.observation_id
        values['created_by'] = getattr(user, 'id', None)
        values['supporting_image'] = (
            self.storage.upload(Bucket.ACTION_PLAN_IMAGES.value, draft.image) if draft.image else None
        )
        plan = self.store.insert('action_plans', values)
        self.action_plans.append(plan)
        if not self.observation.get('corrective_action'):
            self.store.update('observation_details', [eq('id', self.observation_id)], {'corrective_action': True})
            self.observation['corrective_action'] = True
        logger.info(f"Added action plan {plan['id']} to report {self.observation_id}")
        return plan

    def begin_edit(self, plan_id):
        """Put one plan in edit mode; any other plan leaves edit mode."""
        self._require_loaded()
        self._plan(plan_id)
        self.editing_plan_id = plan_id

    def cancel_edit(self):
        self.editing_plan_id = None

    def save_edit(self, changes, image=None):
        """Write changes to the plan in edit mode, optionally replacing its image."""
        if self.editing_plan_id is None:
            raise ValidationError('No action plan is being edited')
        plan = self._plan(self.editing_plan_id)

        values = {k: plan.get(k) for k in ('action', 'due_date', 'responsible_person',
                                           'follow_up_contact', 'status')}
        for key, value in changes.items():
            if key in values and value is not None:
                values[key] = value.isoformat() if hasattr(value, 'isoformat') else value
        errors = Validator.check_action_plan(values)
        if errors:
            raise ValidationError('Please fill in all required action plan fields', errors)

        if image is not None:
            values['supporting_image'] = self.storage.upload(Bucket.ACTION_PLAN_IMAGES.value, image)
        changed = {k: v for k, v in values.items() if plan.get(k) != v}
        if changed:
            self.store.update('action_plans', [eq('id', plan['id'])], changed)
            plan.update(changed)
        self.editing_plan_id = None
        return plan

    def delete_action_plan(self, plan_id, confirmed=False):
        """Delete one plan; irreversible, so ``confirmed`` must be set."""
        self._require_loaded()
        plan = self._plan(plan_id)
        if not confirmed:
            raise ConfirmationRequired('Deleting an action plan cannot be undone; confirm to proceed',
                                       {'id': plan['id'], 'action': plan['action']})
        self.store.delete('action_plans', [eq('id', plan_id)])
        self.action_plans.remove(plan)
        if self.editing_plan_id == plan_id:
            self.editing_plan_id = None
        logger.info(f"Deleted action plan {plan_id} from report {self.observation_id}")

    def resolved_report(self):
        """The report joined with project/company names, category names and action plans."""
        self._require_loaded()
        category_names = []
        if self.selected_categories:
            categories = self.store.select('safety_categories', [Filter('id', 'in', self.selected_categories)],
                                           order_by='name')
            category_names = [c['name'] for c in categories]

        report = dict(self.observation)
        report['project_name'] = (self.observation.get('projects') or {}).get('name', '')
        report['company_name'] = (self.observation.get('companies') or {}).get('name', '')
        report['categories'] = category_names
        report['category_ids'] = list(self.selected_categories)
        report['action_plans'] = [dict(plan) for plan in self.action_plans]
        return report
