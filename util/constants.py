# util/constants.py
from typing import Final

# Evidence limits shared by the prompt, the schema and the filter.
QUOTE_MAX_CHARS: Final[int] = 180
NOTE_MAX_CHARS: Final[int] = 240
MISSING_INFO_MAX_ITEMS: Final[int] = 8
MIN_EVIDENCE: Final[int] = 1
MAX_EVIDENCE_CAP: Final[int] = 8

# Locator token fallback
TOKEN_MIN_LENGTH: Final[int] = 4
TOKEN_MAX_COUNT: Final[int] = 6

PDF_MIME_TYPE: Final[str] = "application/pdf"


class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    ASK = V1 + "/ask"
    DOCUMENTS = V1 + "/documents"
    DOCUMENT = DOCUMENTS + "/{session_id}"
    DOCUMENT_ASK = DOCUMENT + "/ask"
    DOCUMENT_HIGHLIGHT = DOCUMENT + "/highlight"
    DOCUMENT_HIGHLIGHTS = DOCUMENT + "/highlights"
    DOCUMENT_VIEWER = DOCUMENT + "/viewer"
