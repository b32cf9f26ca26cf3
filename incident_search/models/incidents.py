"""Incident record and its embeddable-record capability."""

import abc
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel

from incident_search.models.mapping import (
    FieldMapping,
    FieldSpec,
    to_int,
    to_str,
    to_vector,
)


class EmbeddableRecord(abc.ABC):
    """
    Capability of a record that carries text fields to embed.

    Subclasses declare ``EMBEDDING_SOURCES``, a table from embedding field
    name to the text attribute it is computed from. The ingestion pipeline
    only talks to records through this interface.
    """

    EMBEDDING_SOURCES: ClassVar[Dict[str, str]] = {}
    # Vector index kind per embedding field, diskANN when not listed
    VECTOR_INDEX_TYPES: ClassVar[Dict[str, str]] = {}

    @property
    @abc.abstractmethod
    def record_key(self) -> str:
        """Unique key used for upserts."""

    @abc.abstractmethod
    def to_document(self) -> Dict[str, Any]:
        """Document body persisted in the store."""

    @classmethod
    def vector_index_type(cls, field_name: str) -> str:
        return cls.VECTOR_INDEX_TYPES.get(field_name, "diskANN")

    @classmethod
    def embedding_fields(cls) -> List[str]:
        """Names of the embedding fields of this record type."""
        return list(cls.EMBEDDING_SOURCES)

    def embeddable_text(self, field_name: str) -> str:
        """
        Text to embed for an embedding field.

        :param field_name: embedding field name
        :returns: source text ("" when unset)
        :raises KeyError: if the field is not embeddable
        """
        source = self.EMBEDDING_SOURCES[field_name]
        return getattr(self, source) or ""

    def get_embedding(self, field_name: str) -> Optional[List[float]]:
        if field_name not in self.EMBEDDING_SOURCES:
            raise KeyError(field_name)
        return getattr(self, field_name)

    def set_embedding(self, field_name: str, vector: Optional[List[float]]) -> None:
        if field_name not in self.EMBEDDING_SOURCES:
            raise KeyError(field_name)
        setattr(self, field_name, vector)


class Incident(BaseModel, EmbeddableRecord):
    """Incident record stored for multi-vector similarity search."""

    EMBEDDING_SOURCES: ClassVar[Dict[str, str]] = {
        "title_embedding": "title",
        "summary_embedding": "summary",
    }
    VECTOR_INDEX_TYPES: ClassVar[Dict[str, str]] = {
        "title_embedding": "quantizedFlat",
        "summary_embedding": "diskANN",
    }

    incident_id: str
    severity: int = 0
    status: str = ""
    owning_team_name: str = ""
    owning_contact_alias: str = ""
    owning_contact_name: str = ""
    tsg_id: str = ""
    resolve_date: str = ""
    resolved_by: str = ""
    title: str = ""
    mitigation: str = ""
    mitigate_date: str = ""
    mitigated_by: str = ""
    how_fixed: str = ""
    summary: str = ""
    title_embedding: Optional[List[float]] = None
    summary_embedding: Optional[List[float]] = None

    @property
    def record_key(self) -> str:
        return self.incident_id

    def to_document(self) -> Dict[str, Any]:
        """
        Cosmos document for this incident.

        Cosmos requires an ``id`` property, it mirrors ``incident_id``.
        Unset embeddings are left out of the document.
        """
        document = self.model_dump(exclude_none=True)
        document["id"] = self.incident_id
        return document


def _scalar_fields(names: Dict[str, str], required: str) -> List[FieldSpec]:
    specs = []
    for column, attribute in names.items():
        convert = to_int if attribute == "severity" else to_str
        specs.append(
            FieldSpec(
                column=column,
                attribute=attribute,
                required=attribute == required,
                convert=convert,
            )
        )
    return specs


_DOCUMENT_COLUMNS = {
    "incident_id": "incident_id",
    "severity": "severity",
    "status": "status",
    "owning_team_name": "owning_team_name",
    "owning_contact_alias": "owning_contact_alias",
    "owning_contact_name": "owning_contact_name",
    "tsg_id": "tsg_id",
    "resolve_date": "resolve_date",
    "resolved_by": "resolved_by",
    "title": "title",
    "mitigation": "mitigation",
    "mitigate_date": "mitigate_date",
    "mitigated_by": "mitigated_by",
    "how_fixed": "how_fixed",
    "summary": "summary",
}

# Kusto column names as returned by the incident query
_KUSTO_COLUMNS = {
    "IncidentId": "incident_id",
    "Severity": "severity",
    "Status": "status",
    "OwningTeamName": "owning_team_name",
    "OwningContactAlias": "owning_contact_alias",
    "OwningContactName": "owning_contact_name",
    "TsgId": "tsg_id",
    "ResolveDate": "resolve_date",
    "ResolvedBy": "resolved_by",
    "Title": "title",
    "Mitigation": "mitigation",
    "MitigateDate": "mitigate_date",
    "MitigatedBy": "mitigated_by",
    "HowFixed": "how_fixed",
    "Summary": "summary",
}

# Documents read back from the store
INCIDENT_DOCUMENT_MAPPING: FieldMapping[Incident] = FieldMapping(
    target=Incident,
    fields=tuple(
        _scalar_fields(_DOCUMENT_COLUMNS, required="incident_id")
        + [
            FieldSpec("title_embedding", "title_embedding", convert=to_vector),
            FieldSpec("summary_embedding", "summary_embedding", convert=to_vector),
        ]
    ),
)

# Raw rows of the upstream Kusto incident query
INCIDENT_KUSTO_MAPPING: FieldMapping[Incident] = FieldMapping(
    target=Incident,
    fields=tuple(_scalar_fields(_KUSTO_COLUMNS, required="incident_id")),
)
