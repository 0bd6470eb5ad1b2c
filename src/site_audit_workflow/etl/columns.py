"""Column resolution for inventory spreadsheets.

Maps messy spreadsheet headers ("Memoria RAM", "Velocidad de Bajada (Mbps)",
"Procesador") to canonical field keys. Each canonical field owns an ordered
alias set of exact names and regular expressions; resolution runs three
passes over the registry in registration order:

1. Exact alias match on the normalized header
2. Regex pattern search on the normalized header
3. Fuzzy similarity (difflib) against the exact aliases

A header claimed by one field cannot be claimed by another, so the
first-registered field wins ties. The resolver is pure and deterministic.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from difflib import SequenceMatcher

DEFAULT_FUZZY_THRESHOLD = 0.85


@dataclass(frozen=True)
class FieldAliases:
    """Alias set registered for one canonical field."""

    key: str
    exact: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()


# Registration order matters: earlier fields win contested headers.
DEFAULT_FIELD_ALIASES: tuple[FieldAliases, ...] = (
    FieldAliases(
        "provider",
        exact=("proveedor", "provider", "supplier", "razon social"),
        patterns=(
            r"^(?!.*\b(internet|isp)\b).*\bproveedor\b",
            r"^(?!.*\b(internet|isp)\b).*\bprovider\b",
        ),
    ),
    FieldAliases(
        "site",
        exact=("sitio", "site", "sede", "location", "ubicacion"),
        patterns=(r"\bsitio\b", r"\bsite\b", r"\bsede\b"),
    ),
    FieldAliases(
        "attention_type",
        exact=("atencion", "tipo de atencion", "attention", "attention type", "modalidad"),
        patterns=(r"\batencion\b", r"\battention\b", r"\bmodalidad\b"),
    ),
    FieldAliases(
        "user_id",
        exact=("usuario", "id usuario", "usuario id", "user", "user id", "agente"),
        patterns=(r"\busuario\b", r"\buser\b", r"\bagente\b"),
    ),
    FieldAliases(
        "hostname",
        exact=("hostname", "host", "nombre equipo", "nombre de equipo", "equipo", "pc"),
        patterns=(r"\bhost", r"\bequipo\b", r"\bpc\b"),
    ),
    FieldAliases(
        "cpu",
        exact=("procesador", "processor", "cpu", "microprocesador", "marca procesador"),
        patterns=(
            r"^(?!.*\b(velocidad|frecuencia|speed|ghz)\b).*\b(procesador|processor|cpu)\b",
            r"^(?!.*\b(velocidad|frecuencia|speed|ghz)\b).*\bmicro",
        ),
    ),
    FieldAliases(
        "cpu_speed",
        exact=("velocidad procesador", "velocidad cpu", "cpu speed", "frecuencia"),
        patterns=(r"\b(velocidad|frecuencia)\b.*\b(procesador|cpu)\b", r"\bcpu\b.*\bspeed\b", r"\bghz\b"),
    ),
    FieldAliases(
        "ram",
        exact=("ram", "memoria", "memoria ram", "memory"),
        patterns=(r"\bram\b", r"\bmemoria\b", r"\bmemory\b"),
    ),
    FieldAliases(
        "storage",
        exact=("disco", "disco duro", "almacenamiento", "storage", "disk"),
        patterns=(r"\bdisco\b", r"\bdisk\b", r"\balmacenamiento\b", r"\bstorage\b", r"\b(hdd|ssd)\b"),
    ),
    FieldAliases(
        "os",
        exact=("sistema operativo", "so", "os", "operating system"),
        patterns=(r"\bsistema operativo\b", r"\boperativo\b", r"\boperating\b", r"\bos\b"),
    ),
    FieldAliases(
        "browser",
        exact=("navegador", "browser", "explorador"),
        patterns=(r"\bnavegador\b", r"\bbrowser\b", r"\bexplorador\b"),
    ),
    FieldAliases(
        "antivirus_updated",
        exact=("antivirus actualizado", "av actualizado", "antivirus updated"),
        patterns=(r"\bantivirus\b.*\b(actualizado|updated)\b",),
    ),
    FieldAliases(
        "antivirus",
        exact=("antivirus", "av"),
        patterns=(r"\bantivirus\b", r"\bav\b"),
    ),
    FieldAliases(
        "headset",
        exact=("diadema", "headset", "auricular", "auriculares"),
        patterns=(r"\bdiadema\b", r"\bheadset\b", r"\bauricular"),
    ),
    FieldAliases(
        "isp",
        exact=("isp", "proveedor internet", "proveedor de internet", "internet provider"),
        patterns=(r"\bisp\b", r"\bproveedor\b.*\binternet\b", r"\binternet\b.*\bprovider\b"),
    ),
    FieldAliases(
        "connection_type",
        exact=("tipo conexion", "tipo de conexion", "conexion", "connection type"),
        patterns=(
            r"^(?!.*\b(velocidad|speed)\b).*\bconexion\b",
            r"^(?!.*\b(velocidad|speed)\b).*\bconnection\b",
        ),
    ),
    FieldAliases(
        "download_speed",
        exact=("velocidad bajada", "velocidad de bajada", "velocidad descarga", "download", "download speed"),
        patterns=(r"\bbajada\b", r"\bdescarga\b", r"\bdown(load)?\b"),
    ),
    FieldAliases(
        "upload_speed",
        exact=("velocidad subida", "velocidad de subida", "upload", "upload speed"),
        patterns=(r"\bsubida\b", r"\bup(load)?\b"),
    ),
)

CANONICAL_FIELDS: tuple[str, ...] = tuple(a.key for a in DEFAULT_FIELD_ALIASES)


@dataclass(frozen=True)
class ColumnMatch:
    """How one canonical field was bound."""

    field: str
    header: str
    match_type: str  # "exact", "pattern", "fuzzy"
    similarity: float
    matched_by: str


@dataclass
class ColumnResolution:
    """Complete result of resolving a header row."""

    header_to_field: dict[str, str]
    field_to_header: dict[str, str]
    unresolved: list[str]
    matches: list[ColumnMatch] = field(default_factory=list)

    @property
    def resolved_count(self) -> int:
        return len(self.field_to_header)

    def to_dict(self) -> dict:
        return {
            "header_to_field": dict(self.header_to_field),
            "unresolved": list(self.unresolved),
            "matches": [
                {
                    "field": m.field,
                    "header": m.header,
                    "match_type": m.match_type,
                    "similarity": m.similarity,
                    "matched_by": m.matched_by,
                }
                for m in self.matches
            ],
        }


def normalize_header(name: object) -> str:
    """Lowercase, strip accents and collapse punctuation/whitespace."""
    if name is None:
        return ""
    text = unicodedata.normalize("NFKD", str(name))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower().strip()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return text.strip()


class ColumnResolver:
    """Resolves spreadsheet headers to canonical field keys."""

    def __init__(
        self,
        aliases: tuple[FieldAliases, ...] = DEFAULT_FIELD_ALIASES,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ) -> None:
        self.aliases = aliases
        self.fuzzy_threshold = fuzzy_threshold
        self._compiled: dict[str, list[re.Pattern[str]]] = {
            a.key: [re.compile(p) for p in a.patterns] for a in aliases
        }
        self._exact: dict[str, tuple[str, ...]] = {
            a.key: tuple(normalize_header(e) for e in a.exact) for a in aliases
        }

    @property
    def fields(self) -> list[str]:
        return [a.key for a in self.aliases]

    def resolve(self, headers: list[object]) -> ColumnResolution:
        """Bind canonical fields to headers.

        Args:
            headers: Raw header cells in column order. Blank headers are ignored.

        Returns:
            ColumnResolution with the header/field maps and unresolved fields.
        """
        candidates: list[tuple[str, str]] = []
        seen: set[str] = set()
        for raw in headers:
            if raw is None:
                continue
            header = str(raw)
            normalized = normalize_header(header)
            if not normalized or header in seen:
                continue
            seen.add(header)
            candidates.append((header, normalized))

        field_to_header: dict[str, str] = {}
        claimed: set[str] = set()
        matches: list[ColumnMatch] = []

        def bind(match: ColumnMatch) -> None:
            field_to_header[match.field] = match.header
            claimed.add(match.header)
            matches.append(match)

        for match_pass in (self._exact_match, self._pattern_match, self._fuzzy_match):
            for alias in self.aliases:
                if alias.key in field_to_header:
                    continue
                free = [(h, n) for h, n in candidates if h not in claimed]
                match = match_pass(alias.key, free)
                if match is not None:
                    bind(match)

        ordered = [m for a in self.aliases for m in matches if m.field == a.key]
        return ColumnResolution(
            header_to_field={m.header: m.field for m in ordered},
            field_to_header={m.field: m.header for m in ordered},
            unresolved=[a.key for a in self.aliases if a.key not in field_to_header],
            matches=ordered,
        )

    def _exact_match(self, key: str, free: list[tuple[str, str]]) -> ColumnMatch | None:
        for exact in self._exact[key]:
            for header, normalized in free:
                if normalized == exact:
                    return ColumnMatch(key, header, "exact", 1.0, f"exact:{exact}")
        return None

    def _pattern_match(self, key: str, free: list[tuple[str, str]]) -> ColumnMatch | None:
        for pattern in self._compiled[key]:
            for header, normalized in free:
                if pattern.search(normalized):
                    return ColumnMatch(key, header, "pattern", 0.95, f"pattern:{pattern.pattern}")
        return None

    def _fuzzy_match(self, key: str, free: list[tuple[str, str]]) -> ColumnMatch | None:
        best: ColumnMatch | None = None
        for header, normalized in free:
            for exact in self._exact[key]:
                ratio = SequenceMatcher(None, normalized, exact).ratio()
                if ratio >= self.fuzzy_threshold and (best is None or ratio > best.similarity):
                    best = ColumnMatch(key, header, "fuzzy", round(ratio, 3), f"fuzzy:{exact}")
        return best
