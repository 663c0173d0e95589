"""
SQLAlchemy models for the CRM account tables.

Accounts own Locations; Agreements, Activities and Notes hang off an
Account and optionally a Location; LocationContacts hang off a Location.
Foreign keys deliberately carry no ON DELETE CASCADE: structural changes
must repoint dependents before a parent row can be removed.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AccountType(str, enum.Enum):
    """Structural kind of an account."""
    SINGLE_LOCATION = "single_location"
    MULTI_LOCATION = "multi_location"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PROSPECT = "prospect"


class ChangeActionType(str, enum.Enum):
    """Structural mutations recorded in the change log."""
    MERGE_ACCOUNTS = "merge_accounts"
    MERGE_LOCATIONS = "merge_locations"
    ADD_LOCATION = "add_location"
    REMOVE_LOCATION = "remove_location"


class ChangeEntityType(str, enum.Enum):
    ACCOUNT = "account"
    LOCATION = "location"


class Account(Base):
    """
    A business customer.

    The udf_* columns are the legacy flat address captured before a
    normalized Location row existed for the account.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(500), nullable=False)
    account_type = Column(
        String(30),
        nullable=False,
        default=AccountType.SINGLE_LOCATION.value,
        index=True,
    )
    status = Column(String(30), nullable=False, default=AccountStatus.ACTIVE.value, index=True)
    industry = Column(String(255), nullable=True)

    primary_contact_name = Column(String(255), nullable=True)
    primary_contact_email = Column(String(255), nullable=True)
    primary_contact_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    sage_code = Column(String(50), nullable=True)
    pending_contract_sent = Column(Boolean, nullable=False, default=False)

    # Legacy flat address (UDF = user-defined fields from the old CRM export)
    udf_clinic_name = Column(String(500), nullable=True)
    udf_address_line1 = Column(String(500), nullable=True)
    udf_address_line2 = Column(String(500), nullable=True)
    udf_city = Column(String(200), nullable=True)
    udf_state = Column(String(100), nullable=True)
    udf_zipcode = Column(String(20), nullable=True)
    udf_phone = Column(String(50), nullable=True)
    udf_email = Column(String(255), nullable=True)
    udf_notes = Column(Text, nullable=True)
    udf_country_code = Column(String(10), nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_accounts_type_status", "account_type", "status"),
    )

    def has_udf_address(self) -> bool:
        """True when the legacy fields carry enough to build a Location."""
        return bool(self.udf_address_line1 or self.udf_city or self.udf_state)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name='{self.name}', type={self.account_type})>"


class Location(Base):
    """A physical site belonging to exactly one account."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    name = Column(String(500), nullable=True)
    address_line1 = Column(String(500), nullable=True)
    address_line2 = Column(String(500), nullable=True)
    city = Column(String(200), nullable=True)
    state = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True, default="US")

    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    contact_name = Column(String(255), nullable=True)
    contact_title = Column(String(255), nullable=True)

    is_primary = Column(Boolean, nullable=False, default=False)
    status = Column(String(30), nullable=False, default="active")
    notes = Column(Text, nullable=True)

    clinic_code = Column(String(50), nullable=True)
    sage_code = Column(String(50), nullable=True)
    agreement_document_url = Column(String(1000), nullable=True)
    license_document_url = Column(String(1000), nullable=True)
    pending_contract_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, account={self.account_id}, name='{self.name}')>"


class Agreement(Base):
    __tablename__ = "agreements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)

    agreement_type = Column(String(50), nullable=True)
    title = Column(String(500), nullable=False)
    status = Column(String(30), nullable=False, default="draft")
    document_url = Column(String(1000), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)

    activity_type = Column(String(50), nullable=True)
    subject = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    activity_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Note(Base):
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)

    title = Column(String(500), nullable=True)
    content = Column(Text, nullable=False)
    is_private = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class LocationContact(Base):
    __tablename__ = "location_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ChangeLog(Base):
    """
    Append-only audit trail of structural data-tool operations.

    Never updated or deleted by the engine.
    """
    __tablename__ = "change_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=True)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)

    action_type = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(30), nullable=False, index=True)
    entity_id = Column(String(100), nullable=True, index=True)
    entity_name = Column(String(500), nullable=True)
    description = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ChangeLog(id={self.id}, action={self.action_type}, entity={self.entity_id})>"


# Tables that reference accounts.id / locations.id, used by integrity scans
ACCOUNT_SCOPED_MODELS = (Agreement, Activity, Note)
LOCATION_SCOPED_MODELS = (Agreement, Activity, Note, LocationContact)
