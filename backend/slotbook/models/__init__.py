from .tables import (
    Base,
    Bookings,
    CalendarOverrides,
    RecurringAvailabilities,
    SlotInstances,
    SlotReservations,
)

__all__ = [
    "Base",
    "Bookings",
    "CalendarOverrides",
    "RecurringAvailabilities",
    "SlotInstances",
    "SlotReservations",
]
