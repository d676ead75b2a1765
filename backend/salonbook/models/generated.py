from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Text, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Businesses(Base):
    __tablename__ = 'businesses'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    utc_offset_minutes = Column(Integer)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    users = relationship('Users', back_populates='business')
    customers = relationship('Customers', back_populates='business')
    services = relationship('Services', back_populates='business')
    business_hours = relationship('BusinessHours', uselist=False, back_populates='business')
    appointments = relationship('Appointments', back_populates='business')


class Users(Base):
    """Staff members and admins of a business."""
    __tablename__ = 'users'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    role = Column(Text, nullable=False, server_default=text("'staff'"))
    settings = Column(Text, nullable=False, server_default=text("'{}'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    email = Column(Text)
    phone = Column(Text)

    business = relationship('Businesses', back_populates='users')
    staff_hours = relationship('StaffHours', uselist=False, back_populates='staff')
    appointments = relationship('Appointments', back_populates='staff')


class Customers(Base):
    __tablename__ = 'customers'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    phone = Column(Text)
    email = Column(Text)

    business = relationship('Businesses', back_populates='customers')
    appointments = relationship('Appointments', back_populates='customer')


class Services(Base):
    __tablename__ = 'services'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration = Column(Text, nullable=False, server_default=text("'00:30:00'"))
    price = Column(Float, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    business = relationship('Businesses', back_populates='services')
    appointments = relationship('Appointments', back_populates='service')


class BusinessHours(Base):
    __tablename__ = 'business_hours'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False, unique=True)
    regular_hours = Column(Text, nullable=False, server_default=text("'{}'"))
    special_dates = Column(Text, nullable=False, server_default=text("'[]'"))
    id = Column(Integer, primary_key=True)

    business = relationship('Businesses', back_populates='business_hours')


class StaffHours(Base):
    __tablename__ = 'staff_hours'

    staff_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    regular_hours = Column(Text, nullable=False, server_default=text("'{}'"))
    special_dates = Column(Text, nullable=False, server_default=text("'[]'"))
    id = Column(Integer, primary_key=True)

    staff = relationship('Users', back_populates='staff_hours')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        Index('idx_appointments_staff_start', 'staff_id', 'start_time'),
        Index('idx_appointments_customer_start', 'customer_id', 'start_time'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    staff_id = Column(ForeignKey('users.id'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    # UTC instants
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'booked'"))
    id = Column(Integer, primary_key=True)
    # "metadata" is reserved on declarative classes
    meta = Column('metadata', Text, nullable=False, server_default=text("'{}'"))
    customer_notes = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    business = relationship('Businesses', back_populates='appointments')
    customer = relationship('Customers', back_populates='appointments')
    staff = relationship('Users', back_populates='appointments')
    service = relationship('Services', back_populates='appointments')
    logs = relationship('AppointmentLogs', back_populates='appointment')


class AppointmentLogs(Base):
    __tablename__ = 'appointment_logs'

    appointment_id = Column(ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, index=True)
    action = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)
    actor_user_id = Column(ForeignKey('users.id', ondelete='SET NULL'))
    old_status = Column(Text)
    new_status = Column(Text)
    details = Column(Text, nullable=False, server_default=text("'{}'"))

    appointment = relationship('Appointments', back_populates='logs')
    actor_user = relationship('Users', foreign_keys=[actor_user_id])
