"""Domain services.

Each module holds the rules for one record kind. Service functions take an
open connection and the acting :class:`~campaign_server.services.permissions.User`,
raise :class:`~campaign_server.services.errors.ServiceError` for domain
failures, and return plain dicts ready for JSON encoding.
"""
