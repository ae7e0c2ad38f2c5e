from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Numeric,
    Text,
)
from sqlalchemy.orm import relationship

from lucy.core.database import Base


# The tables below are owned by the Premium Freight PHP application.
# Only the columns this service reads are mapped.


# =========================
# User
# =========================
class User(Base):
    __tablename__ = "User"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, unique=True, index=True)
    role = Column(String(50), default="Worker")
    password = Column(String(255))
    authorization_level = Column(Integer, nullable=False, default=0)
    plant = Column(String(50))

    orders = relationship("PremiumFreight", back_populates="creator")


# =========================
# Lookups
# =========================
class Location(Base):
    __tablename__ = "Location"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_name = Column(String(100))
    city = Column(String(100))
    state = Column(String(100))
    zip = Column(String(20))


class Carrier(Base):
    __tablename__ = "Carriers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)


class Status(Base):
    __tablename__ = "Status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)


# =========================
# PremiumFreight (orders)
# =========================
class PremiumFreight(Base):
    """
    One premium freight order.

    The plant used for scoping comes from the creator (User.plant),
    `planta` is the plant written on the order itself.
    """

    __tablename__ = "PremiumFreight"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("User.id"), index=True)
    date = Column(DateTime)
    planta = Column(String(50))
    transport = Column(String(50))
    in_out_bound = Column(String(50))
    cost_euros = Column(Numeric(15, 2))
    description = Column(Text)
    area = Column(String(50))
    category_cause = Column(String(50))

    origin_id = Column(Integer, ForeignKey("Location.id"))
    destiny_id = Column(Integer, ForeignKey("Location.id"))
    status_id = Column(Integer, ForeignKey("Status.id"), default=1)
    carrier_id = Column(Integer, ForeignKey("Carriers.id"))
    moneda = Column(String(3))

    # Relationships
    creator = relationship("User", back_populates="orders")
