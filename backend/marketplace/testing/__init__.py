"""
Shared test utilities and factories.

Re-exports all factory functions for convenient imports:
    from marketplace.testing import create_user, create_upload, get_auth_headers
"""

from marketplace.testing.factories import (
    create_application,
    create_mission,
    create_notification,
    create_order,
    create_setting,
    create_upload,
    create_user,
    get_auth_headers,
    get_auth_token,
)

__all__ = [
    "create_application",
    "create_mission",
    "create_notification",
    "create_order",
    "create_setting",
    "create_upload",
    "create_user",
    "get_auth_headers",
    "get_auth_token",
]
