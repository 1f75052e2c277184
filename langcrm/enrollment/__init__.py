"""Class catalogue and student enrollment."""

from .service import ClassForm, EnrollmentChange, EnrollmentService

__all__ = ["ClassForm", "EnrollmentChange", "EnrollmentService"]
