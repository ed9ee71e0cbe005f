"""Field mapping model"""
import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, String, UniqueConstraint

from syncbridge.models.base import Base, utcnow


class MappingType(str, enum.Enum):
    """Kinds of translatable fields"""
    TRACKER = "tracker"
    STATUS = "status"
    PRIORITY = "priority"
    CUSTOM_FIELD = "custom_field"
    USER = "user"


class FieldMapping(Base):
    """Value correspondence between the Redmine and Jira vocabularies"""

    __tablename__ = "field_mappings"
    __table_args__ = (
        UniqueConstraint("mapping_type", "redmine_value", "jira_value", name="uq_field_mapping"),
    )

    id = Column(Integer, primary_key=True, index=True)
    mapping_type = Column(Enum(MappingType), nullable=False, index=True)

    redmine_value = Column(String, nullable=False)
    redmine_id = Column(String, nullable=True)
    jira_value = Column(String, nullable=False)
    jira_id = Column(String, nullable=True)

    # custom_field rows carry {"redmine_field_id": ..., "jira_field_id": ...}
    additional_config = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<FieldMapping({self.mapping_type}: {self.redmine_value} <-> {self.jira_value})>"
