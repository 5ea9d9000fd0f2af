"""
Official Source Inference
Map a calendar row to the agency that publishes it.
"""
import re
from typing import NamedTuple, Optional


class OfficialSource(NamedTuple):
    publisher: str
    official_home: Optional[str]
    official: bool


BLS = OfficialSource("U.S. Bureau of Labor Statistics", "https://www.bls.gov/news.release/", True)
BEA = OfficialSource("U.S. Bureau of Economic Analysis", "https://www.bea.gov/news", True)
CENSUS = OfficialSource("U.S. Census Bureau", "https://www.census.gov/economic-indicators/", True)
FED = OfficialSource("Federal Reserve", "https://www.federalreserve.gov/newsevents.htm", True)

_SOURCE_FIELD_MAP = (
    ("bureau of labor statistics", BLS),
    ("bureau of economic analysis", BEA),
    ("census bureau", CENSUS),
    ("federal reserve", FED),
)

_US_CODE_RE = re.compile(r"^(us|usa|u\.s\.?)$")

_TOPIC_MAP = (
    (re.compile(r"(cpi|inflation|nonfarm|payroll|unemployment|employment)"), BLS),
    (re.compile(r"(gdp|pce|personal income|consumer spending)"), BEA),
    (re.compile(r"(retail sales|durable goods|housing starts|new home sales)"), CENSUS),
    (re.compile(r"(interest rate|fomc|federal funds)"), FED),
)


def infer_official_source(
    *,
    source: Optional[str] = None,
    indicator: Optional[str] = None,
    event: Optional[str] = None,
    category: Optional[str] = None,
    country: Optional[str] = None,
) -> OfficialSource:
    """The provider's source field wins; US topics fall back to keyword matching."""
    source_text = (source or "").strip()
    lowered = source_text.lower()
    if lowered:
        for needle, agency in _SOURCE_FIELD_MAP:
            if needle in lowered:
                return agency

    country_text = (country or "").strip().lower()
    haystack = " ".join(v for v in (indicator, event, category) if v and v.strip()).lower()
    if "united states" in country_text or _US_CODE_RE.match(country_text):
        for pattern, agency in _TOPIC_MAP:
            if pattern.search(haystack):
                return agency

    return OfficialSource(source_text or "Unknown", None, False)


def resolve_report_url(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    if not text or not re.match(r"^https?://", text, flags=re.IGNORECASE):
        return None
    return text
