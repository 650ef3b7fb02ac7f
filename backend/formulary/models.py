"""
Domain types for the formulary engine.

DrugEntry  - one monograph parsed out of the formulary
Chunk      - a retrievable unit derived from one DrugEntry
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class SectionKey(str, Enum):
    """
    Closed set of monograph sections.

    Values are the wire names stored in chunk metadata.
    """
    INDICATIONS = "indications"
    CONTRAINDICATIONS = "contraindications"
    DOSAGE = "dosage"
    DOSE_ADJUSTMENT = "doseAdjustment"
    PRECAUTIONS = "precautions"
    ADVERSE_REACTIONS = "adverseReactions"
    DRUG_INTERACTIONS = "drugInteractions"
    ADMINISTRATION = "administration"
    FORMULATIONS = "formulations"

    @property
    def label(self) -> str:
        return SECTION_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["SectionKey"]:
        """Return the member for a wire value, or None when unknown."""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


SECTION_LABELS: Dict[SectionKey, str] = {
    SectionKey.INDICATIONS: "Indications",
    SectionKey.CONTRAINDICATIONS: "Contraindications",
    SectionKey.DOSAGE: "Dosage",
    SectionKey.DOSE_ADJUSTMENT: "Dose Adjustment",
    SectionKey.PRECAUTIONS: "Precautions",
    SectionKey.ADVERSE_REACTIONS: "Adverse Reactions",
    SectionKey.DRUG_INTERACTIONS: "Drug Interactions",
    SectionKey.ADMINISTRATION: "Administration",
    SectionKey.FORMULATIONS: "Formulations",
}


class Classification(str, Enum):
    RX = "Rx"
    OTC = "OTC"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "Classification":
        text = str(value or "").strip().upper()
        if text == "RX":
            return cls.RX
        if text == "OTC":
            return cls.OTC
        return cls.UNKNOWN


@dataclass(frozen=True)
class SourceRange:
    """Inclusive page (or entry) index range an entry was read from."""
    start: int
    end: int

    @property
    def label(self) -> str:
        low, high = min(self.start, self.end), max(self.start, self.end)
        if low == high:
            return f"{low}"
        return f"{low}-{high}"

    def indices(self) -> List[int]:
        low, high = min(self.start, self.end), max(self.start, self.end)
        return list(range(low, high + 1))

    @classmethod
    def from_label(cls, label: Any) -> Optional["SourceRange"]:
        """Parse "3" or "3-5"; None when the label is not numeric."""
        text = str(label or "").strip()
        if not text:
            return None
        parts = text.split("-", 1)
        try:
            start = int(parts[0])
            end = int(parts[1]) if len(parts) > 1 else start
        except ValueError:
            return None
        return cls(start=start, end=end)


@dataclass
class DrugEntry:
    """
    One monograph extracted from the formulary.

    Attributes:
        drug_name: Upper-cased canonical heading (e.g. "PARACETAMOL")
        classification: Rx / OTC / Unknown marker from the entry anchor
        raw_content: Heading plus every body line as read
        normalized_content: raw_content after whitespace normalization
        sections: Populated sections, each above its minimum length
        pregnancy_category: First "Pregnancy Category" value found
        atc_code: First "ATC Code" value found
        source_range: Pages the entry spans
    """
    drug_name: str
    classification: Classification
    raw_content: str
    normalized_content: str
    sections: Dict[SectionKey, str] = field(default_factory=dict)
    pregnancy_category: Optional[str] = None
    atc_code: Optional[str] = None
    source_range: SourceRange = field(default_factory=lambda: SourceRange(0, 0))


@dataclass(frozen=True)
class ChunkMetadata:
    drug_name: str
    source_range: Optional[SourceRange] = None
    section: Optional[SectionKey] = None
    pregnancy_category: Optional[str] = None
    atc_code: Optional[str] = None
    classification: Classification = Classification.UNKNOWN

    @property
    def entry_range(self) -> str:
        return self.source_range.label if self.source_range else ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the camelCase metadata stored alongside vectors."""
        data: Dict[str, Any] = {
            "drugName": self.drug_name,
            "entryRange": self.entry_range,
            "sourceEntries": self.source_range.indices() if self.source_range else [],
            "classification": self.classification.value,
        }
        if self.section is not None:
            data["section"] = self.section.value
        if self.pregnancy_category:
            data["pregnancyCategory"] = self.pregnancy_category
        if self.atc_code:
            data["atcCode"] = self.atc_code
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChunkMetadata":
        data = data or {}
        source_range = SourceRange.from_label(data.get("entryRange") or data.get("pageRange"))
        if source_range is None:
            entries = [int(v) for v in data.get("sourceEntries") or [] if str(v).lstrip("-").isdigit()]
            if entries:
                source_range = SourceRange(min(entries), max(entries))
        return cls(
            drug_name=str(data.get("drugName") or ""),
            source_range=source_range,
            section=SectionKey.parse(data.get("section")),
            pregnancy_category=data.get("pregnancyCategory") or None,
            atc_code=data.get("atcCode") or None,
            classification=Classification.parse(data.get("classification")),
        )


@dataclass(frozen=True)
class Chunk:
    """Retrievable unit. Ids are unique within one corpus build only."""
    id: str
    content: str
    metadata: ChunkMetadata

    @property
    def drug_name(self) -> str:
        return self.metadata.drug_name

    @property
    def section(self) -> Optional[SectionKey]:
        return self.metadata.section

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "content": self.content, "metadata": self.metadata.to_dict()}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Chunk":
        """
        Build a Chunk from a collaborator document.

        Accepts {content | page_content | text, metadata: {...}, id?}; the id
        may also live in metadata["id"].
        """
        metadata = document.get("metadata") or {}
        content = document.get("content") or document.get("page_content") or document.get("text") or ""
        raw_id = document.get("id") or metadata.get("id") or ""
        return cls(
            id=str(raw_id).strip(),
            content=str(content),
            metadata=ChunkMetadata.from_dict(metadata),
        )
