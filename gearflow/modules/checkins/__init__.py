"""Equipment check-ins."""

from gearflow.modules.checkins.service import CheckinService

__all__ = ["CheckinService"]
