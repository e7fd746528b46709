from fanout.models.fanout_entry import FanoutEntry
from fanout.models.notification import Notification
from fanout.models.profile import Profile
from fanout.models.subscription import Subscription

__all__ = [
    "FanoutEntry",
    "Notification",
    "Profile",
    "Subscription",
]
