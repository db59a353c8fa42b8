"""
Driver model for delivery drivers.

This module contains:
- Driver: A delivery driver assigned to a zone
"""

from sqlalchemy import Column, String

from .base import BaseModel


class Driver(BaseModel):
    """
    Driver model representing a delivery driver.

    Attributes:
        name: Driver name (unique)
        phone: Contact phone
        zone: Zone this driver normally runs
        access_code: Plain access code typed into the driver view
    """

    __tablename__ = "drivers"

    name = Column(String(200), nullable=False, unique=True, index=True)
    phone = Column(String(50), nullable=True)
    zone = Column(String(50), nullable=True, index=True)
    # Stored and compared as plain text
    access_code = Column(String(100), nullable=True)

    def __repr__(self) -> str:
        """String representation of driver."""
        return f"Driver(id={self.id}, name='{self.name}', zone='{self.zone}')"
