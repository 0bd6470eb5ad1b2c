"""Field normalization for inventory spreadsheet cells.

Turns free-text cells ("Intel(R) Core(TM) i5-10400 CPU @ 2.90GHz",
"8 GB DDR4", "SSD 1TB", "100 Mbps") into canonical typed values. Every rule
is best effort: unparsable numbers become 0 and unrecognized names become
UNKNOWN. FieldNormalizer.normalize never raises.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from site_audit_workflow.models import UNKNOWN

logger = logging.getLogger(__name__)

MAX_CPU_GHZ = 10.0
MAX_RAM_GB = 1024.0
MAX_STORAGE_GB = 100_000.0
MAX_LINK_MBPS = 100_000.0

TRUE_VALUES = frozenset({"true", "si", "yes", "y", "s", "1", "activo", "enabled", "x", "ok", "actualizado"})
FALSE_VALUES = frozenset({"false", "no", "n", "0", "inactivo", "disabled", "desactualizado"})

_NUMBER = r"(\d+(?:[.,]\d+)?)"


@dataclass(frozen=True)
class ProcessorInfo:
    """Canonical description of a processor cell."""

    brand: str = UNKNOWN
    model: str = UNKNOWN
    model_number: str | None = None
    generation: int | None = None
    speed_ghz: float = 0.0

    @property
    def normalized(self) -> str:
        if self.brand == UNKNOWN:
            return UNKNOWN
        text = f"{self.brand} {self.model}"
        if self.model_number:
            sep = "-" if self.model.startswith("Core i") else " "
            text += f"{sep}{self.model_number}"
        if self.speed_ghz:
            text += f" @ {self.speed_ghz:.1f} GHz"
        return text


def _text(raw: object) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    text = str(raw).strip()
    return text or None


def _fold(text: str) -> str:
    """Lowercase and strip accents."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def _to_float(value: str) -> float:
    return float(value.replace(",", "."))


def _clamp(value: float, upper: float) -> float:
    if value <= 0:
        return 0.0
    return min(value, upper)


def parse_clock_ghz(raw: object) -> float:
    """Parse a clock speed into GHz. Bare numbers above 100 are read as MHz."""
    text = _text(raw)
    if text is None:
        return 0.0
    folded = _fold(text)
    match = re.search(_NUMBER + r"\s*ghz", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)), MAX_CPU_GHZ), 2)
    match = re.search(_NUMBER + r"\s*mhz", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)) / 1000, MAX_CPU_GHZ), 2)
    match = re.fullmatch(r"\s*" + _NUMBER + r"\s*", folded)
    if match:
        value = _to_float(match.group(1))
        if value > 100:
            value = value / 1000
        return round(_clamp(value, MAX_CPU_GHZ), 2)
    return 0.0


def parse_ram_gb(raw: object) -> float:
    """Parse a memory size into GB ("8 GB", "4096 MB", "16"). Bare numbers above 64 are read as MB."""
    text = _text(raw)
    if text is None:
        return 0.0
    folded = re.sub(r"\(.*?\)|\[.*?\]", " ", _fold(text))
    match = re.search(_NUMBER + r"\s*(?:gb|g\b|gigas?|gigabytes?)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)), MAX_RAM_GB), 2)
    match = re.search(_NUMBER + r"\s*(?:mb|m\b|megabytes?)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)) / 1024, MAX_RAM_GB), 2)
    match = re.search(r"^\s*" + _NUMBER + r"\b", folded)
    if match:
        value = _to_float(match.group(1))
        if value > 64:
            value = value / 1024
        return round(_clamp(value, MAX_RAM_GB), 2)
    return 0.0


def parse_storage_gb(raw: object) -> float:
    """Parse a storage capacity into GB ("500 GB", "1TB", "1,5 TB", "256 SSD")."""
    text = _text(raw)
    if text is None:
        return 0.0
    folded = re.sub(r"\(.*?\)|\[.*?\]", " ", _fold(text))
    folded = re.sub(r"\b(\d+)\s*tr\b", r"\1 tb", folded)
    match = re.search(_NUMBER + r"\s*(?:tb|t\b|terabytes?)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)) * 1024, MAX_STORAGE_GB), 2)
    match = re.search(_NUMBER + r"\s*(?:gb|g\b|gigas?|gigabytes?)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)), MAX_STORAGE_GB), 2)
    match = re.search(r"\b" + _NUMBER + r"\b", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)), MAX_STORAGE_GB), 2)
    return 0.0


def parse_link_mbps(raw: object) -> float:
    """Parse a link speed into Mbps ("100 Mbps", "1 Gbps", "512 kbps", "20")."""
    text = _text(raw)
    if text is None:
        return 0.0
    folded = _fold(text)
    match = re.search(_NUMBER + r"\s*(?:gbps|gb/s|gbit)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)) * 1000, MAX_LINK_MBPS), 2)
    match = re.search(_NUMBER + r"\s*(?:kbps|kb/s|kbit)", folded)
    if match:
        return round(_clamp(_to_float(match.group(1)) / 1000, MAX_LINK_MBPS), 2)
    match = re.search(_NUMBER, folded)
    if match:
        return round(_clamp(_to_float(match.group(1)), MAX_LINK_MBPS), 2)
    return 0.0


def parse_storage_type(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    if re.search(r"\bnvme\b|\bm\.?2\b|\bpcie\b", folded):
        return "NVMe"
    if re.search(r"\bssd\b|estado\s*solido|solid\s*state", folded):
        return "SSD"
    if re.search(r"hibrido|hybrid|sshd", folded):
        return "Hybrid"
    if re.search(r"\bhdd\b|disco\s*duro|hard\s*drive|mecanico|mechanical|\brpm\b", folded):
        return "HDD"
    return UNKNOWN


def parse_os(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    if re.search(r"windows\s*11|\bw(in)?\s*11\b", folded):
        return "Windows 11"
    if re.search(r"windows\s*10|\bw(in)?\s*10\b", folded):
        return "Windows 10"
    if re.search(r"windows\s*8", folded):
        return "Windows 8"
    if re.search(r"windows\s*7", folded):
        return "Windows 7"
    if re.search(r"mac\s*os|macos|os\s*x", folded):
        return "macOS"
    if re.search(r"chrome\s*os", folded):
        return "Chrome OS"
    if re.search(r"linux|ubuntu|fedora|debian|centos|red\s*hat", folded):
        return "Linux"
    return UNKNOWN


def parse_browser(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    for needle, name in (
        ("edge", "Edge"),
        ("chrome", "Chrome"),
        ("firefox", "Firefox"),
        ("safari", "Safari"),
        ("opera", "Opera"),
        ("internet explorer", "Internet Explorer"),
    ):
        if needle in folded:
            return name
    return UNKNOWN


_ANTIVIRUS_BRANDS: tuple[tuple[str, str], ...] = (
    ("defender", "Windows Defender"),
    ("kaspersky", "Kaspersky"),
    ("norton", "Norton"),
    ("mcafee", "McAfee"),
    ("avast", "Avast"),
    ("avg", "AVG"),
    ("bitdefender", "Bitdefender"),
    ("eset", "ESET"),
    ("sophos", "Sophos"),
    ("crowdstrike", "CrowdStrike"),
    ("sentinel", "SentinelOne"),
    ("trend micro", "Trend Micro"),
    ("malwarebytes", "Malwarebytes"),
)


def parse_antivirus(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    for needle, name in _ANTIVIRUS_BRANDS:
        if needle in folded:
            return name
    return title_text(text)


def parse_connection_type(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    if re.search(r"fibra|fiber|fibre|ftth", folded):
        return "Fibra"
    if re.search(r"\bcable\b|coax", folded):
        return "Cable"
    if re.search(r"dsl", folded):
        return "DSL"
    if re.search(r"satelit", folded):
        return "Satelital"
    if re.search(r"\b5g\b", folded):
        return "Movil 5G"
    if re.search(r"\b4g\b|\blte\b", folded):
        return "Movil 4G"
    return UNKNOWN


def parse_attention(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    folded = _fold(text)
    if re.search(r"\bho\b|home|remot|teletrabajo", folded):
        return "Remoto"
    if re.search(r"\bos\b|presencial|sitio|on\s*site|onsite", folded):
        return "Presencial"
    return UNKNOWN


def parse_boolean(raw: object) -> bool | None:
    if isinstance(raw, bool):
        return raw
    text = _text(raw)
    if text is None:
        return None
    folded = _fold(text)
    if folded in TRUE_VALUES:
        return True
    if folded in FALSE_VALUES:
        return False
    return None


def title_text(raw: object) -> str:
    """Trim and capitalize each word; UNKNOWN when blank."""
    text = _text(raw)
    if text is None:
        return UNKNOWN
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def site_text(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    return re.sub(r"\s+", " ", text).upper()


def identifier_text(raw: object) -> str:
    text = _text(raw)
    if text is None:
        return UNKNOWN
    cleaned = re.sub(r"[^\w.\-]", "", text)
    return cleaned.upper() or UNKNOWN


def parse_processor(raw: object) -> ProcessorInfo:
    """Extract brand, model family, model number, generation and clock from processor text."""
    text = _text(raw)
    if text is None:
        return ProcessorInfo()

    cleaned = _fold(text)
    cleaned = re.sub(r"\[.*?\]", " ", cleaned)
    cleaned = re.sub(r"\((r|tm)\)", " ", cleaned)
    cleaned = re.sub(r"\b(processor|procesador|cpu|with|con)\b", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    brand = _processor_brand(cleaned)
    model = UNKNOWN
    model_number: str | None = None
    generation: int | None = None

    if brand == "Intel":
        family = re.search(r"core\s*i([3579])|\bi([3579])(?=[-\s]?\d|\b)", cleaned)
        if family:
            model = f"Core i{family.group(1) or family.group(2)}"
            number = re.search(r"i[3579][-\s]*(\d{3,5})([a-z]{0,3})\b", cleaned)
            if number:
                model_number = number.group(1) + number.group(2).upper()
                generation = _intel_generation(number.group(1))
        elif "celeron" in cleaned:
            model = "Celeron"
        elif "pentium" in cleaned:
            model = "Pentium"
        elif "xeon" in cleaned:
            model = "Xeon"
        elif re.search(r"core\s*ultra", cleaned):
            model = "Core Ultra"
    elif brand == "AMD":
        family = re.search(r"ryzen\s*([3579])\b", cleaned)
        if family:
            model = f"Ryzen {family.group(1)}"
            number = re.search(r"ryzen\s*\d\s*(?:pro\s*)?(\d{4})([a-z]{0,2})\b", cleaned)
            if number:
                model_number = number.group(1) + number.group(2).upper()
                generation = int(number.group(1)[0])
        elif "athlon" in cleaned:
            model = "Athlon"
        elif "epyc" in cleaned:
            model = "EPYC"
        elif "ryzen" in cleaned:
            model = "Ryzen"
    elif brand == "Apple":
        chip = re.search(r"\bm([1-4])\b(\s*(pro|max|ultra))?", cleaned)
        if chip:
            model = f"M{chip.group(1)}" + (f" {chip.group(3).title()}" if chip.group(3) else "")

    if generation is None:
        explicit = re.search(r"(\d{1,2})\s*(?:th|st|nd|rd|va|ma|ta|na|a|o)?\s*gen", cleaned) or re.search(
            r"gen(?:eracion|eration)?\s*[:\-]?\s*(\d{1,2})\b", cleaned
        )
        if explicit:
            generation = int(explicit.group(1))

    return ProcessorInfo(
        brand=brand,
        model=model,
        model_number=model_number,
        generation=generation,
        speed_ghz=_processor_speed(cleaned),
    )


def _processor_brand(cleaned: str) -> str:
    if re.search(r"\bintel+\b|\binten\b", cleaned):
        return "Intel"
    if re.search(r"\bamd\b|advanced\s*micro", cleaned):
        return "AMD"
    if re.search(r"\bapple\b", cleaned):
        return "Apple"
    if re.search(r"core\s*i[3579]|\bi[3579][-\s]\d|pentium|celeron|xeon", cleaned):
        return "Intel"
    if re.search(r"ryzen|athlon|phenom|threadripper|epyc", cleaned):
        return "AMD"
    return UNKNOWN


def _intel_generation(number: str) -> int:
    if len(number) == 5:
        return int(number[:2])
    if len(number) == 4:
        return int(number[0])
    return 1


def _processor_speed(cleaned: str) -> float:
    for pattern in (_NUMBER + r"\s*gh", r"@\s*" + _NUMBER, _NUMBER + r"\s*mhz"):
        match = re.search(pattern, cleaned)
        if match:
            value = _to_float(match.group(1))
            if "mhz" in pattern:
                value = value / 1000
            return round(_clamp(value, MAX_CPU_GHZ), 2)
    candidates = [_to_float(m) for m in re.findall(r"\b(\d+[.,]\d+)\b", cleaned)]
    plausible = [c for c in candidates if 1.0 <= c <= 5.5]
    return round(max(plausible), 2) if plausible else 0.0


class FieldNormalizer:
    """Normalizes raw cells by canonical field key."""

    def __init__(self) -> None:
        self.rules: dict[str, Callable[[object], object]] = {
            "provider": title_text,
            "site": site_text,
            "attention_type": parse_attention,
            "user_id": identifier_text,
            "hostname": identifier_text,
            "cpu": parse_processor,
            "cpu_speed": parse_clock_ghz,
            "ram": parse_ram_gb,
            "storage": parse_storage_gb,
            "storage_type": parse_storage_type,
            "os": parse_os,
            "browser": parse_browser,
            "antivirus": parse_antivirus,
            "antivirus_updated": parse_boolean,
            "headset": title_text,
            "isp": title_text,
            "connection_type": parse_connection_type,
            "download_speed": parse_link_mbps,
            "upload_speed": parse_link_mbps,
        }
        self._fallbacks: dict[str, object] = {
            "cpu": ProcessorInfo(),
            "cpu_speed": 0.0,
            "ram": 0.0,
            "storage": 0.0,
            "antivirus_updated": None,
            "download_speed": 0.0,
            "upload_speed": 0.0,
        }

    def normalize(self, field: str, raw: object) -> object:
        """Normalize one cell for a canonical field.

        Unknown field keys fall back to trimmed text. Any parsing error is
        logged and degrades to the field's unknown value.
        """
        rule = self.rules.get(field, title_text)
        try:
            return rule(raw)
        except Exception as exc:
            logger.warning("Could not normalize %s value %r: %s", field, raw, exc)
            return self._fallbacks.get(field, UNKNOWN)

    def normalize_row(self, cells: Mapping[str, object]) -> dict:
        """Normalize a row of canonical-field cells into AssetRecord fields.

        Args:
            cells: Mapping of canonical field key to raw cell value.
                Missing keys are treated as empty cells.

        Returns:
            Keyword arguments for AssetRecord (identity and component fields).
        """
        processor = self.normalize("cpu", cells.get("cpu"))
        if not isinstance(processor, ProcessorInfo):
            processor = ProcessorInfo()
        cpu_speed = processor.speed_ghz or self.normalize("cpu_speed", cells.get("cpu_speed"))

        storage_raw = cells.get("storage")
        return {
            "provider": self.normalize("provider", cells.get("provider")),
            "site": self.normalize("site", cells.get("site")),
            "attention_type": self.normalize("attention_type", cells.get("attention_type")),
            "user_id": self.normalize("user_id", cells.get("user_id")),
            "hostname": self.normalize("hostname", cells.get("hostname")),
            "cpu_brand": processor.brand,
            "cpu_model": processor.model,
            "cpu_generation": processor.generation,
            "cpu_speed_ghz": cpu_speed,
            "ram_gb": self.normalize("ram", cells.get("ram")),
            "storage_type": self.normalize("storage_type", storage_raw),
            "storage_gb": self.normalize("storage", storage_raw),
            "os_name": self.normalize("os", cells.get("os")),
            "browser": self.normalize("browser", cells.get("browser")),
            "antivirus": self.normalize("antivirus", cells.get("antivirus")),
            "antivirus_updated": self.normalize("antivirus_updated", cells.get("antivirus_updated")),
            "headset": self.normalize("headset", cells.get("headset")),
            "isp_name": self.normalize("isp", cells.get("isp")),
            "connection_type": self.normalize("connection_type", cells.get("connection_type")),
            "download_mbps": self.normalize("download_speed", cells.get("download_speed")),
            "upload_mbps": self.normalize("upload_speed", cells.get("upload_speed")),
        }
