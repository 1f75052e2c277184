"""Prospect intake, edits and conversion."""

from .lifecycle import ProspectLifecycle
from .validation import ProspectForm, validate_prospect_form

__all__ = ["ProspectLifecycle", "ProspectForm", "validate_prospect_form"]
