"""API routers for the masjid application."""

from app.routers import (
    auth,
    events,
    favorites,
    masjid_users,
    masjids,
    notifications,
    prayer_times,
    preferences,
    questions,
    subscriptions,
    super_admin,
    whoami,
)  # noqa: F401
