"""Paginated, filtered and sorted report listing with delete and spreadsheet export."""
import csv
import io
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from shared.models import now
from shared.utils import format_display_date
from .store import QuerySpec, Filter, NotFoundError
from ..utils import delete_observation_cascade

logger = logging.getLogger(__name__)

PAGE_SIZE = 10
SORTABLE_COLUMNS = ('date', 'subject', 'submitter_name', 'consequences', 'status', 'created_at')
LIST_EMBED = {'projects': ('name',), 'companies': ('name',)}

# (column label, row -> value)
EXPORT_COLUMNS = [
    ('Report ID', lambda row: row['id']),
    ('Subject', lambda row: row.get('subject') or ''),
    ('Submitter', lambda row: row.get('submitter_name') or ''),
    ('Date', lambda row: format_display_date(row.get('date'))),
    ('Project', lambda row: (row.get('projects') or {}).get('name', '')),
    ('Company', lambda row: (row.get('companies') or {}).get('name', '')),
    ('Description', lambda row: row.get('description') or ''),
    ('Severity', lambda row: row.get('consequences') or ''),
    ('Status', lambda row: row.get('status') or ''),
    ('Created At', lambda row: format_display_date(row.get('created_at'))),
]
EXPORT_SHEET_TITLE = 'Safety Reports'
HEADER_FILL = PatternFill(start_color='234CAD', end_color='234CAD', fill_type='solid')


@dataclass
class ReportFilters:
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[str] = None
    severity: Optional[str] = None
    created_by: Optional[str] = None  # "My Reports"

    def to_filters(self):
        filters = []
        if self.start_date:
            filters.append(Filter('date', 'gte', self.start_date))
        if self.end_date:
            filters.append(Filter('date', 'lte', self.end_date))
        if self.status:
            filters.append(Filter('status', 'eq', self.status))
        if self.severity:
            filters.append(Filter('consequences', 'eq', self.severity))
        if self.created_by:
            filters.append(Filter('created_by', 'eq', self.created_by))
        return filters


@dataclass
class ReportsPage:
    rows: List[dict]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self):
        return math.ceil(self.total / self.page_size) if self.total else 0

    def to_dict(self):
        return {
            'reports': self.rows,
            'pagination': {
                'page': self.page,
                'per_page': self.page_size,
                'total': self.total,
                'pages': self.total_pages,
                'has_next': self.page < self.total_pages,
                'has_prev': self.page > 1,
            }
        }


@dataclass
class DeleteSummary:
    id: str
    subject: str
    date: str
    submitter_name: str
    action_plans: int = 0

    def to_dict(self):
        return {
            'id': self.id,
            'subject': self.subject,
            'date': self.date,
            'submitter_name': self.submitter_name,
            'action_plans': self.action_plans,
        }


class ReportsTableController:
    """Table state: page, filters and sort; every change re-queries the store."""

    def __init__(self, store, page_size=PAGE_SIZE):
        self.store = store
        self.page_size = page_size
        self.page = 1
        self.filters = ReportFilters()
        self.sort_key = 'created_at'
        self.ascending = False
        self.current: Optional[ReportsPage] = None
        self.pending_delete: Optional[DeleteSummary] = None

    def build_query(self):
        return QuerySpec(
            'observation_details',
            self.filters.to_filters(),
            order_by=self.sort_key,
            ascending=self.ascending,
            embed=LIST_EMBED,
        ).page(self.page, self.page_size)

    def load(self):
        rows, total = self.store.query(self.build_query())
        self.current = ReportsPage(rows, total or 0, self.page, self.page_size)
        return self.current

    def set_filters(self, **values):
        """Replace the filter set and return to page 1."""
        self.filters = ReportFilters(**values)
        self.page = 1
        return self.load()

    def clear_filters(self):
        return self.set_filters()

    def toggle_sort(self, key):
        """Ascending on a new column; the same column alternates asc/desc."""
        if key not in SORTABLE_COLUMNS:
            raise ValueError(f"Cannot sort by {key}")
        self.ascending = not (key == self.sort_key and self.ascending)
        self.sort_key = key
        self.page = 1
        return self.load()

    def go_to_page(self, page):
        self.page = max(1, int(page))
        return self.load()

    def request_delete(self, report_id):
        """First step of deletion: remember the target and describe it for confirmation."""
        row = None
        if self.current is not None:
            row = next((r for r in self.current.rows if r['id'] == report_id), None)
        if row is None:
            row = self.store.get('observation_details', report_id)
        if row is None:
            raise NotFoundError(f"Report {report_id} not found")

        plans = self.store.select('action_plans', [Filter('observation_id', 'eq', report_id)])
        self.pending_delete = DeleteSummary(
            id=row['id'],
            subject=row.get('subject') or '',
            date=row.get('date') or '',
            submitter_name=row.get('submitter_name') or '',
            action_plans=len(plans),
        )
        return self.pending_delete

    def cancel_delete(self):
        self.pending_delete = None

    def confirm_delete(self):
        """Second step: delete the action plans, then the observation, then reload the page."""
        if self.pending_delete is None:
            raise ValueError('No report is pending deletion')
        target = self.pending_delete
        summary = delete_observation_cascade(self.store, target.id)
        self.pending_delete = None

        if self.current is not None:
            page = self.load()
            if not page.rows and self.page > 1:
                self.go_to_page(self.page - 1)
        return summary

    def export_rows(self):
        """The loaded page flattened to {label: value} dicts."""
        if self.current is None:
            self.load()
        return [{label: value(row) for label, value in EXPORT_COLUMNS} for row in self.current.rows]

    def export_filename(self, extension):
        return f"safety-reports-{now().date().isoformat()}.{extension}"

    def to_csv(self):
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=[label for label, _ in EXPORT_COLUMNS])
        writer.writeheader()
        writer.writerows(self.export_rows())
        return buffer.getvalue()

    def to_xlsx(self):
        labels = [label for label, _ in EXPORT_COLUMNS]
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = EXPORT_SHEET_TITLE
        sheet.append(labels)
        for cell in sheet[1]:
            cell.font = Font(bold=True, color='FFFFFF')
            cell.fill = HEADER_FILL

        rows = self.export_rows()
        for row in rows:
            sheet.append([row[label] for label in labels])

        for index, label in enumerate(labels, start=1):
            width = max([len(label)] + [len(str(row[label])) for row in rows])
            sheet.column_dimensions[sheet.cell(row=1, column=index).column_letter].width = min(width + 2, 60)

        buffer = io.BytesIO()
        workbook.save(buffer)
        logger.info(f"Exported {len(rows)} report(s) to Excel")
        return buffer.getvalue()
