"""
Persisted record shapes for the tenant collections.

Every record carries the owning tenant's ``user_id``; ``model_dump()`` gives the
document inserted into MongoDB.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ClientRecord(BaseModel):
    user_id: str
    name: str
    cpf_cnpj: Optional[str] = None
    email: str = ""
    phone: str = ""
    address: Optional[str] = None
    status: str = "Ativo"
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PolicyRecord(BaseModel):
    user_id: str
    client_id: str
    policy_number: str
    insurance_company: str
    type: str
    insured_asset: str = ""
    premium_value: float
    commission_rate: float
    start_date: str
    expiration_date: str
    producer_id: str
    status: str = "Ativa"
    automatic_renewal: bool = True
    is_budget: bool = False
    pdf_url: Optional[str] = None
    brokerage_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransactionRecord(BaseModel):
    user_id: str
    client_id: Optional[str] = None
    policy_id: Optional[str] = None
    type_id: str
    description: str
    amount: float
    date: str
    transaction_date: str
    due_date: str
    status: str = "PENDENTE"
    nature: str = "RECEITA"
    company_id: Optional[str] = None
    brokerage_id: Optional[int] = None
    producer_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AppointmentRecord(BaseModel):
    user_id: str
    client_id: Optional[str] = None
    policy_id: Optional[str] = None
    title: str
    date: str
    time: str
    status: str = "Pendente"
    notes: Optional[str] = None
    priority: Optional[str] = "Normal"
    recurrence_rule: Optional[str] = None
    is_recurring: bool = False
    parent_appointment_id: Optional[str] = None
    original_start_timestamptz: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
