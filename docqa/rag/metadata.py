"""Document metadata extraction: counts, keywords and a coarse document type."""
import math
import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from docqa.rag.records import Metadata

logger = structlog.get_logger()

WORDS_PER_MINUTE = 200
MIN_KEYWORD_OCCURRENCES = 3
MAX_KEYWORDS = 10
HEADER_LINES = 10

DEFAULT_IT_KEYWORDS = (
    "network", "server", "router", "switch", "firewall", "vpn", "dns", "dhcp",
    "tcp", "udp", "ip", "subnet", "vlan", "api", "database", "security",
    "authentication", "authorization", "ssl", "tls", "https", "configuration",
    "monitoring", "backup", "recovery", "disaster", "load balancer", "proxy",
    "bandwidth", "latency", "throughput", "protocol", "ethernet", "wifi",
    "infrastructure", "datacenter", "cloud", "aws", "azure", "kubernetes",
    "docker", "container", "virtualization", "hypervisor", "storage",
)


class DocumentType(str, Enum):
    POLICY = "policy"
    MANUAL = "manual"
    CONFIGURATION = "configuration"
    TROUBLESHOOTING = "troubleshooting"
    SPECIFICATION = "specification"
    GENERAL = "general"


# Checked in order; the first matching trigger wins.
DOCUMENT_TYPE_TRIGGERS: Tuple[Tuple[DocumentType, Tuple[str, ...]], ...] = (
    (DocumentType.POLICY, ("policy", "procedure")),
    (DocumentType.MANUAL, ("manual", "guide")),
    (DocumentType.CONFIGURATION, ("configuration", "config")),
    (DocumentType.TROUBLESHOOTING, ("troubleshoot", "problem")),
    (DocumentType.SPECIFICATION, ("specification", "requirement")),
)


class MetadataExtractor:
    """Deterministic metadata extraction with a configurable keyword vocabulary."""

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        vocabulary = DEFAULT_IT_KEYWORDS if keywords is None else keywords
        self.keywords: List[str] = [k.lower() for k in vocabulary]
        self._patterns = [
            (keyword, re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE))
            for keyword in self.keywords
        ]

    def extract(self, text: str, filename: str) -> Metadata:
        """Build the metadata record for a document.

        Args:
            text: Cleaned document text
            filename: Name of the source file

        Returns:
            Metadata for the document
        """
        word_count = len(text.split())
        header = " ".join(text.split("\n")[:HEADER_LINES])

        metadata = Metadata(
            filename=filename,
            word_count=word_count,
            character_count=len(text),
            estimated_reading_time=math.ceil(word_count / WORDS_PER_MINUTE),
            keywords=self.extract_keywords(text)[:MAX_KEYWORDS],
            document_type=self.identify_document_type(header).value,
        )

        logger.debug(
            "metadata_extracted",
            filename=filename,
            word_count=word_count,
            document_type=metadata.document_type,
            keyword_count=len(metadata.keywords),
        )
        return metadata

    def extract_keywords(self, text: str) -> List[str]:
        """Vocabulary terms mentioned more than twice, most frequent first."""
        found = []
        for keyword, pattern in self._patterns:
            count = len(pattern.findall(text))
            if count >= MIN_KEYWORD_OCCURRENCES:
                found.append((keyword, count))

        # sorted() is stable, so vocabulary order breaks ties
        found = sorted(found, key=lambda item: item[1], reverse=True)
        return [keyword for keyword, _ in found]

    @staticmethod
    def identify_document_type(
        text: str,
        triggers: Sequence[Tuple[DocumentType, Tuple[str, ...]]] = DOCUMENT_TYPE_TRIGGERS,
    ) -> DocumentType:
        """Classify a document from its opening lines."""
        lowered = text.lower()
        for document_type, words in triggers:
            if any(word in lowered for word in words):
                return document_type
        return DocumentType.GENERAL
