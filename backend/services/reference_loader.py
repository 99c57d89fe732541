"""Lookup lists for the report form selectors."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

REFERENCE_TABLES = {
    'projects': ('id', 'name'),
    'companies': ('id', 'name'),
    'categories': ('id', 'name', 'icon'),
}


@dataclass
class ReferenceData:
    projects: List[Dict[str, Any]] = field(default_factory=list)
    companies: List[Dict[str, Any]] = field(default_factory=list)
    categories: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return {'projects': self.projects, 'companies': self.companies, 'categories': self.categories}


class ReferenceDataLoader:
    """Fetches projects, companies and safety categories, each ordered by name."""

    TABLES = {'projects': 'projects', 'companies': 'companies', 'categories': 'safety_categories'}

    def __init__(self, store):
        self.store = store
        self.data = ReferenceData()

    def load(self):
        """Fetch all three lists; a store failure propagates and leaves the previous lists in place."""
        loaded = {}
        for attr, table in self.TABLES.items():
            rows = self.store.select(table, order_by='name')
            columns = REFERENCE_TABLES[attr]
            loaded[attr] = [{c: row.get(c) for c in columns} for row in rows]
        self.data = ReferenceData(**loaded)
        logger.debug(f"Loaded reference data: {len(self.data.projects)} projects, "
                     f"{len(self.data.companies)} companies, {len(self.data.categories)} categories")
        return self.data
