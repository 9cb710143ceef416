# Import every model so Base.metadata is complete for create_all / Alembic.
from transportapp.models.departure_template import DepartureTemplate  # noqa: F401
from transportapp.models.trip import Trip  # noqa: F401
from transportapp.models.reservation import Reservation  # noqa: F401
from transportapp.models.passenger import ReservationPassenger  # noqa: F401
from transportapp.models.ticket import Ticket  # noqa: F401
from transportapp.models.payment import Payment  # noqa: F401
from transportapp.models.setting import Setting  # noqa: F401
from transportapp.models.user import User  # noqa: F401
from transportapp.models.audit_log import AuditLog  # noqa: F401
