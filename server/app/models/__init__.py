from .user import User  # noqa: F401
from .masjid import Masjid  # noqa: F401
from .membership import MasjidMembership  # noqa: F401
from .subscription import MasjidSubscription  # noqa: F401
from .notification_settings import DeviceSettings, UserSettings  # noqa: F401
from .prayer_time import PrayerTime  # noqa: F401
from .notification import Notification  # noqa: F401
from .event import Event  # noqa: F401
from .question import Question  # noqa: F401
from .favorite import FavoriteMasjid  # noqa: F401
