"""Monthly summary statistics over observations."""
import datetime
import logging
from collections import Counter
from shared.enums import ObservationSubject, Consequence, ReportStatus
from .store import Filter

logger = logging.getLogger(__name__)


def month_bounds(month):
    """Return (first day, first day of next month) for 'YYYY-MM'."""
    try:
        start = datetime.datetime.strptime(month, '%Y-%m').date()
    except (TypeError, ValueError):
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _counts(rows, column, members):
    counts = Counter(row.get(column) for row in rows)
    return {member.value: counts.get(member.value, 0) for member in members}


def monthly_summary(store, month):
    """Totals for one calendar month: by subject, status, severity and category."""
    start, end = month_bounds(month)
    observations = store.select('observation_details', [
        Filter('date', 'gte', start.isoformat()),
        Filter('date', 'lt', end.isoformat()),
    ])

    category_counts = {}
    ids = [row['id'] for row in observations]
    if ids:
        links = store.select('observation_categories', [Filter('observation_id', 'in', ids)])
        per_category = Counter(link['category_id'] for link in links)
        if per_category:
            categories = store.select('safety_categories', [Filter('id', 'in', list(per_category))],
                                      order_by='name')
            category_counts = {c['name']: per_category[c['id']] for c in categories}

    summary = {
        'month': month,
        'total_observations': len(observations),
        'observation_types': _counts(observations, 'subject', ObservationSubject),
        'report_status': _counts(observations, 'status', ReportStatus),
        'risk_levels': _counts(observations, 'consequences', Consequence),
        'categories': category_counts,
    }
    logger.debug(f"Monthly summary for {month}: {summary['total_observations']} observation(s)")
    return summary
