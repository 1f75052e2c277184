"""Students and the combined client list."""

from .students import StudentForm, StudentService
from .views import ClientKind, ClientSummary, build_client_summaries, find_client, list_clients

__all__ = [
    "StudentForm", "StudentService",
    "ClientKind", "ClientSummary", "build_client_summaries", "find_client", "list_clients",
]
