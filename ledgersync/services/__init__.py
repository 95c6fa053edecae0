"""Services module for external integrations."""

from ledgersync.services.audit_logger import AuditLogger, get_audit_logger
from ledgersync.services.supabase_client import SupabaseClient, get_supabase_client

__all__ = [
    "AuditLogger",
    "get_audit_logger",
    "SupabaseClient",
    "get_supabase_client",
]
