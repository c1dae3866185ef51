"""taskscope: multi-tenant task management with organization-scoped access control."""

__version__ = "0.1.0"
