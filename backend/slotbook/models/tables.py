from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class RecurringAvailabilities(Base):
    __tablename__ = 'recurring_availabilities'
    __table_args__ = (
        UniqueConstraint(
            'vendor_id', 'day_of_week', 'effective_from', 'effective_until',
            name='recurring_availability_unique',
        ),
        Index('ix_recurring_vendor_day_active', 'vendor_id', 'day_of_week', 'is_active'),
        # At most one active ongoing rule per vendor weekday
        Index(
            'uq_recurring_one_ongoing', 'vendor_id', 'day_of_week',
            unique=True,
            postgresql_where=text('is_active AND effective_until IS NULL'),
            sqlite_where=text('is_active AND effective_until IS NULL'),
        ),
    )

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, nullable=False)
    day_of_week = Column(Enum(*DAY_NAMES, name='day_of_week'), nullable=False)
    start_time = Column(Text, nullable=False)  # "HH:MM"
    end_time = Column(Text, nullable=False)
    break_times = Column(JSON, nullable=False, default=lambda: [])  # [{"start": "HH:MM", "end": "HH:MM"}]
    default_duration = Column(Integer, nullable=False, server_default=text('60'))
    buffer_time = Column(Integer, nullable=False, server_default=text('15'))
    max_bookings = Column(Integer, nullable=False, server_default=text('1'))
    effective_from = Column(Date)   # NULL = immediately
    effective_until = Column(Date)  # NULL = ongoing
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    generated_until = Column(Date)  # last date slots were materialized for
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_ongoing(self) -> bool:
        return self.effective_until is None


class SlotInstances(Base):
    __tablename__ = 'slot_instances'
    __table_args__ = (
        CheckConstraint('reservation_count >= 0', name='slot_reservation_count_non_negative'),
        CheckConstraint('reservation_count <= max_bookings', name='slot_reservation_count_capacity'),
        Index('ix_slot_vendor_date_start', 'vendor_id', 'slot_date', 'start_time'),
        Index('ix_slot_vendor_day', 'vendor_id', 'day_of_week'),
    )

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, nullable=False)
    service_id = Column(Integer)  # NULL = general slot, any service
    slot_date = Column(Date, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday … 6 = Sunday
    start_time = Column(Text, nullable=False)  # "HH:MM"
    end_time = Column(Text, nullable=False)
    is_available = Column(Boolean, nullable=False, server_default=text('1'))
    max_bookings = Column(Integer, nullable=False, server_default=text('1'))
    reservation_count = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    reservations = relationship('SlotReservations', back_populates='slot', passive_deletes=True)

    @property
    def remaining(self) -> int:
        return max(self.max_bookings - self.reservation_count, 0)


class SlotReservations(Base):
    __tablename__ = 'slot_reservations'

    id = Column(Integer, primary_key=True)
    slot_id = Column(ForeignKey('slot_instances.id', ondelete='CASCADE'), nullable=False, index=True)
    booking_id = Column(Integer, index=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    released_at = Column(DateTime)  # NULL while the reservation is live

    slot = relationship('SlotInstances', back_populates='reservations')


class CalendarOverrides(Base):
    __tablename__ = 'calendar_overrides'
    __table_args__ = (
        Index('ix_override_vendor_dates', 'vendor_id', 'date_start', 'date_end'),
    )

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, nullable=False)
    date_start = Column(Date, nullable=False)
    date_end = Column(Date, nullable=False)
    override_kind = Column(Enum('day_off', 'custom_hours', name='override_kind'), nullable=False)
    start_time = Column(Text)  # custom_hours only
    end_time = Column(Text)
    reason = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_booking_vendor_status', 'vendor_id', 'status'),
    )

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, nullable=False)
    customer_id = Column(Integer, nullable=False)
    service_id = Column(Integer)
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        Enum('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', name='booking_status'),
        nullable=False,
        server_default=text("'pending'"),
    )
    slot_id = Column(ForeignKey('slot_instances.id', ondelete='SET NULL'))
    notes = Column(Text)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    cancelled_by = Column(Integer)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    slot = relationship('SlotInstances')
