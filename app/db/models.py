# app/db/models.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

Base = declarative_base()


class AutomationRuleRow(Base):
    __tablename__ = "automation_rules"
    pk = Column(Integer, primary_key=True, autoincrement=True)  # creation order
    id = Column(String(64), unique=True, index=True, nullable=False)
    trigger_name = Column(String(128), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    conditions = Column(JSON, nullable=False)
    execution_order = Column(Integer, default=0, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class AutomationActionRow(Base):
    __tablename__ = "automation_actions"
    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, index=True, nullable=False)
    rule_id = Column(
        String(64),
        ForeignKey("automation_rules.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    name = Column(String(255), nullable=False)
    type = Column(String(64), nullable=False)
    configuration = Column(JSON, nullable=False)
    execution_order = Column(Integer, default=0, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class AutomationLogRow(Base):
    # no FK on rule_id/action_id: entries outlive deleted rules
    __tablename__ = "automation_logs"
    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, index=True, nullable=False)
    run_id = Column(String(64), index=True, nullable=False)
    sequence = Column(Integer, nullable=False)
    trigger_name = Column(String(128), index=True, nullable=False)
    rule_id = Column(String(64), index=True, nullable=True)
    action_id = Column(String(64), nullable=True)
    status = Column(String(16), index=True, nullable=False)
    executed_at = Column(DateTime(timezone=True), index=True, nullable=False)
    is_test = Column(Boolean, default=False, nullable=False)
    executed_by = Column(String(255), nullable=True)
    details = Column(JSON, nullable=False)
    parameters = Column(JSON, nullable=False)
