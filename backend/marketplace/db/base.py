"""Import all models for Alembic or metadata creation."""

from marketplace.models.mission import Mission, MissionApplication
from marketplace.models.notification import Notification
from marketplace.models.order import Order, OrderItem
from marketplace.models.revenue import Revenue
from marketplace.models.setting import Setting
from marketplace.models.upload import Upload
from marketplace.models.user import User

__all__ = [
    "User",
    "Upload",
    "Order",
    "OrderItem",
    "Mission",
    "MissionApplication",
    "Notification",
    "Setting",
    "Revenue",
]
