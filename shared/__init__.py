"""Shared package for the Safety Observation portal.

This package contains code used by the backend Flask API, the CLI and the
data-store adapters. It includes:

- Database models (models.py) - SQLAlchemy models for observations, action plans and reference data
- Enums (enums.py) - Subject, report group, risk scales, status and role values
- Validation utilities (validation.py, schemas.py) - Input validation and sanitization
- Utility functions (utils.py) - Filename sanitization, display formatting and image helpers
"""
