from sqlalchemy import Column, Float, ForeignKey, Index, Integer, Table, Text, UniqueConstraint, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Locations(Base):
    __tablename__ = 'locations'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, server_default=text("'UTC'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    address = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    business_hours = relationship('BusinessHours', back_populates='location')
    holidays = relationship('Holidays', back_populates='location')
    appointments = relationship('Appointments', back_populates='location')


class BusinessHours(Base):
    __tablename__ = 'business_hours'
    __table_args__ = (
        UniqueConstraint('location_id', 'day_of_week'),
    )

    id = Column(Integer, primary_key=True)
    location_id = Column(ForeignKey('locations.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 1 = Monday ... 7 = Sunday
    open_time = Column(Text)  # "HH:MM"
    close_time = Column(Text)
    is_closed = Column(Integer, nullable=False, server_default=text('0'))

    location = relationship('Locations', back_populates='business_hours')


class Holidays(Base):
    __tablename__ = 'holidays'
    __table_args__ = (
        UniqueConstraint('location_id', 'holiday_date', 'is_recurring'),
    )

    id = Column(Integer, primary_key=True)
    location_id = Column(ForeignKey('locations.id', ondelete='CASCADE'), nullable=False)
    holiday_date = Column(Text, nullable=False)  # "YYYY-MM-DD"
    is_recurring = Column(Integer, nullable=False, server_default=text('0'))
    is_deleted = Column(Integer, nullable=False, server_default=text('0'))
    note = Column(Text)

    location = relationship('Locations', back_populates='holidays')


class Services(Base):
    __tablename__ = 'services'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    duration_key = Column(Text, nullable=False, server_default=text("'30_minutes'"))
    slot_length_key = Column(Text, nullable=False, server_default=text("'default'"))
    padding_before_key = Column(Text, nullable=False, server_default=text("'off'"))
    padding_after_key = Column(Text, nullable=False, server_default=text("'off'"))
    price = Column(Float)
    providers_preference = Column(Text, nullable=False, server_default=text("'specified_order'"))
    providers_random_tie = Column(Integer, nullable=False, server_default=text('0'))
    occupancy_period_before = Column(Integer, nullable=False, server_default=text('0'))
    occupancy_period_after = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    appointments = relationship('Appointments', back_populates='service')


class Providers(Base):
    __tablename__ = 'providers'

    id = Column(Integer, primary_key=True)
    display_name = Column(Text, nullable=False)
    email = Column(Text)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    working_hours = relationship('WorkingHours', back_populates='provider')
    breaks = relationship('Breaks', back_populates='provider')
    appointments = relationship('Appointments', back_populates='provider')


class WorkingHours(Base):
    __tablename__ = 'working_hours'
    __table_args__ = (
        UniqueConstraint('provider_id', 'day_of_week'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Text)
    end_time = Column(Text)
    is_off_day = Column(Integer, nullable=False, server_default=text('0'))

    provider = relationship('Providers', back_populates='working_hours')


class Breaks(Base):
    __tablename__ = 'breaks'

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)

    provider = relationship('Providers', back_populates='breaks')


class Customers(Base):
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    email = Column(Text)
    phone = Column(Text)
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    appointments = relationship('Appointments', back_populates='customer')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        Index('appointment_provider_start', 'provider_id', 'scheduled_start'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='SET NULL'))
    location_id = Column(ForeignKey('locations.id'))
    scheduled_start = Column(Text, nullable=False)  # UTC "YYYY-MM-DD HH:MM:SS"
    scheduled_end = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    is_deleted = Column(Integer, nullable=False, server_default=text('0'))
    notes = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    provider = relationship('Providers', back_populates='appointments')
    service = relationship('Services', back_populates='appointments')
    customer = relationship('Customers', back_populates='appointments')
    location = relationship('Locations', back_populates='appointments')


t_provider_locations = Table(
    'provider_locations', metadata,
    Column('provider_id', ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
    Column('location_id', ForeignKey('locations.id', ondelete='CASCADE'), nullable=False),
    Column('is_active', Integer, nullable=False, server_default=text('1')),
    UniqueConstraint('provider_id', 'location_id')
)


t_provider_services = Table(
    'provider_services', metadata,
    Column('service_id', ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
    Column('provider_id', ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
    Column('display_order', Integer, nullable=False, server_default=text('0')),
    Column('price_override', Float),
    Column('is_active', Integer, nullable=False, server_default=text('1')),
    UniqueConstraint('service_id', 'provider_id')
)
