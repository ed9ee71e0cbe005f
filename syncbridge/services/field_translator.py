"""Field value translation between Redmine and Jira vocabularies"""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from syncbridge.models import FieldMapping, MappingType, TrackerSystem
from syncbridge.services.tracker_client import IssueSnapshot, TargetFieldValue, TranslatedIssue

logger = logging.getLogger(__name__)


class FieldTranslator:
    """Looks up active FieldMapping rows; read-only.

    An untranslatable value yields None and the field is left out of the
    outgoing payload. That is the intended lossy policy, not an error.
    """

    def __init__(self, db: Session):
        self.db = db

    def translate(
        self,
        mapping_type: MappingType,
        source_system: TrackerSystem,
        source_value: Any,
        field_id: Optional[str] = None,
    ) -> Optional[TargetFieldValue]:
        """Translate one value from `source_system` into the other system's vocabulary.

        For custom fields, `field_id` is the source system's field identifier and must
        match `additional_config["<source>_field_id"]` of the mapping row.
        """
        if source_value is None or source_value == "":
            return None

        mapping_type = MappingType(mapping_type)
        source_system = TrackerSystem(source_system)
        target_system = source_system.other
        source_column = getattr(FieldMapping, f"{source_system.value}_value")

        query = (
            self.db.query(FieldMapping)
            .filter(
                FieldMapping.is_active == True,  # noqa: E712
                FieldMapping.mapping_type == mapping_type,
                source_column == str(source_value),
            )
            .order_by(FieldMapping.id)
        )

        if mapping_type != MappingType.CUSTOM_FIELD:
            row = query.first()
        else:
            # JSON filtering is dialect specific; match the field id in Python.
            source_key = f"{source_system.value}_field_id"
            row = next(
                (
                    r
                    for r in query.all()
                    if str((r.additional_config or {}).get(source_key)) == str(field_id)
                ),
                None,
            )

        if row is None:
            return None

        target_field_id = None
        if mapping_type == MappingType.CUSTOM_FIELD:
            raw_field_id = (row.additional_config or {}).get(f"{target_system.value}_field_id")
            target_field_id = str(raw_field_id) if raw_field_id is not None else None

        return TargetFieldValue(
            value=getattr(row, f"{target_system.value}_value"),
            id=getattr(row, f"{target_system.value}_id"),
            field_id=target_field_id,
        )

    def translate_issue(self, snapshot: IssueSnapshot) -> TranslatedIssue:
        """Translate every mappable field of a source issue."""
        translated = TranslatedIssue(
            source_system=snapshot.system,
            target_system=snapshot.system.other,
            title=snapshot.title,
            description=snapshot.description,
        )

        for mapping_type, value in (
            (MappingType.TRACKER, snapshot.tracker),
            (MappingType.STATUS, snapshot.status),
            (MappingType.PRIORITY, snapshot.priority),
            (MappingType.USER, snapshot.assignee),
        ):
            if value is None:
                continue
            target = self.translate(mapping_type, snapshot.system, value)
            if target is None:
                logger.debug(f"No {mapping_type.value} mapping for '{value}' from {snapshot.system.value}")
                continue
            translated.fields[mapping_type] = target

        for field_id, value in snapshot.custom_fields.items():
            if isinstance(value, (list, dict)):
                logger.debug(f"Skipping multi-value custom field {field_id} on {snapshot.issue_id}")
                continue
            target = self.translate(MappingType.CUSTOM_FIELD, snapshot.system, value, field_id=field_id)
            if target is None or not target.field_id:
                continue
            translated.custom_fields.append(target)

        return translated
