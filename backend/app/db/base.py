from backend.app.db.base_class import Base

# Import models to register metadata for Base.metadata.create_all in tests
from backend.app.models.user import User  # noqa: F401
from backend.app.models.recurring import RecurringCommitment  # noqa: F401
from backend.app.models.booking import Booking  # noqa: F401
from backend.app.models.booking_event import BookingEvent  # noqa: F401
from backend.app.models.payment import Payment  # noqa: F401
from backend.app.models.billing_cycle import BillingCycle  # noqa: F401
from backend.app.models.blackout import BlackoutRange  # noqa: F401
from backend.app.models.makeup import MakeupLesson, SaturdaySession  # noqa: F401
from backend.app.models.calendar_sync_log import CalendarSyncLog  # noqa: F401
from backend.app.models.studio_setting import StudioSetting  # noqa: F401
