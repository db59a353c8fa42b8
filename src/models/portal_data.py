"""
ClientPortalData model for client self-service selections.
"""

from sqlalchemy import Boolean, Column, String, Text
from sqlalchemy.dialects.sqlite import JSON

from .base import BaseModel


class ClientPortalData(BaseModel):
    """
    What a client chose through their portal.

    Attributes:
        client_name: Client key (unique)
        selected_dates: Self-selected delivery dates (ISO strings)
        ingredient_picks: Mapping of category -> chosen ingredients
        notes: Client notes for the kitchen
        needs_date_selection: Admin flag asking the client to pick dates
        pending_payment: Client has an invoice to pay
        payment_overdue: Client's payment is overdue
    """

    __tablename__ = "client_portal_data"

    client_name = Column(String(200), nullable=False, unique=True, index=True)
    selected_dates = Column(JSON, nullable=False, default=list)
    ingredient_picks = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, nullable=True)
    needs_date_selection = Column(Boolean, nullable=False, default=False)
    pending_payment = Column(Boolean, nullable=False, default=False)
    payment_overdue = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"ClientPortalData(client_name='{self.client_name}', dates={len(self.selected_dates or [])})"
