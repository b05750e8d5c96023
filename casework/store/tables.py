"""
Columnar rows backing the record store.

Every column is text, as in the spreadsheet the store replaces: list and JSON
values are encoded by casework.store.mapping before they get here. `row_id`
is the record's position in its table.
"""
from sqlalchemy import Column, Integer, String, Text

from casework.database import Base


class IncidentRow(Base):
    __tablename__ = "incident_reports"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(String, nullable=False, unique=True, index=True)
    complainant_id = Column(String, nullable=False, index=True)
    complainant_category = Column(String, nullable=False, default="")
    date_time_of_incident = Column(String, nullable=False, default="")
    reported_on = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    attachments = Column(Text, nullable=False, default="[]")  # JSON array
    status = Column(String, nullable=False, default="Open", index=True)
    last_updated_by = Column(String, nullable=False, default="")
    last_updated_at = Column(String, nullable=False, default="")
    metadata_changelog = Column(Text, nullable=False, default="{}")  # JSON object


class CaseRow(Base):
    __tablename__ = "cases"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(String, nullable=False, unique=True, index=True)
    incident_id = Column(String, nullable=False, index=True)
    reported_individual_id = Column(String, nullable=False, index=True)
    squad = Column(String, nullable=False, default="")
    campus = Column(String, nullable=False, default="", index=True)
    category_of_offence = Column(String, nullable=False, default="")
    sub_category_of_offence = Column(String, nullable=False, default="")
    level_of_offence = Column(String, nullable=False, default="")
    case_comments = Column(Text, nullable=False, default="")
    attachments = Column(Text, nullable=False, default="[]")  # JSON array
    investigator_attachments = Column(Text, nullable=False, default="[]")
    approver_attachments = Column(Text, nullable=False, default="[]")
    verdict = Column(String, nullable=False, default="")
    punishment = Column(Text, nullable=False, default="")
    case_status = Column(String, nullable=False, default="Pending Investigation", index=True)
    verdict_recorded_at = Column(String, nullable=False, default="")
    appeal_reason = Column(Text, nullable=False, default="")
    appeal_submitted_at = Column(String, nullable=False, default="")
    appeal_attachments = Column(Text, nullable=False, default="[]")
    review_comments = Column(Text, nullable=False, default="")
    last_updated_by = Column(String, nullable=False, default="")
    last_updated_at = Column(String, nullable=False, default="")
    metadata_changelog = Column(Text, nullable=False, default="{}")
