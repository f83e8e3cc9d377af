# intelboard/config.py
import os
from datetime import timedelta
from pathlib import Path

DB_PATH = Path(os.getenv("INTELBOARD_DB_PATH", Path(__file__).resolve().parent.parent / "intel.duckdb"))

# AI analysis proxy (serverless function in front of the hosted model)
ANALYSIS_URL = os.getenv("INTELBOARD_ANALYSIS_URL", "")
ANALYSIS_KEY = os.getenv("INTELBOARD_ANALYSIS_KEY", "")
ANALYSIS_TIMEOUT_SECONDS = 60.0

# Owner recorded on items created by the RSS importer
IMPORT_USER_ID = os.getenv("INTELBOARD_IMPORT_USER", "feed-importer")

RSS_SOURCES = [
    # Geopolitics
    {"source_name": "BBC World", "url": "http://feeds.bbci.co.uk/news/world/rss.xml",
     "credibility": "high", "category": "diplomacy"},
    {"source_name": "Al Jazeera", "url": "https://www.aljazeera.com/xml/rss/all.xml",
     "credibility": "high", "category": "diplomacy"},

    # Cyber
    {"source_name": "The Hacker News", "url": "https://feeds.feedburner.com/TheHackersNews",
     "credibility": "medium", "category": "technology"},
    {"source_name": "KrebsOnSecurity", "url": "https://krebsonsecurity.com/feed/",
     "credibility": "high", "category": "technology"},
]

# Keyword heuristics for imported items, checked in this order
CATEGORY_KEYWORDS = {
    "conflict": ["war", "missile", "airstrike", "shelling", "troops", "offensive", "ceasefire", "military"],
    "security": ["attack", "terror", "bomb", "shooting", "arrest", "police", "kidnap"],
    "technology": ["ransomware", "malware", "cve", "breach", "exploit", "phishing", "ddos", "apt", "cyber"],
    "humanitarian": ["refugee", "aid", "famine", "flood", "earthquake", "displaced", "cholera"],
    "economy": ["economy", "inflation", "tariff", "trade", "oil", "market", "currency"],
    "diplomacy": ["talks", "summit", "sanction", "embassy", "treaty", "election", "minister"],
}

SEVERITY_TRIGGERS = [
    "killed", "dead", "attack", "missile", "explosion", "invasion", "strike",
    "exploit", "zero-day", "0day", "ransomware", "breach", "hostage",
]

STATE_ACTOR_HINTS = ["government", "ministry", "army", "military", "president", "navy", "state-sponsored"]
NON_STATE_HINTS = ["militia", "rebels", "insurgents", "militants", "jihadist", "cartel", "hacktivist"]

# Simple weights
WEIGHTS = {
    "severity_base": 20,
    "severity_per_hit": 15,
    "confidence_base": 55,
    "confidence_per_hit": 8,
}

TIME_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}

RECENT_WINDOW = timedelta(hours=24)

# Dashboard shows the top 5 regions, analytics shows all of them
DASHBOARD_TOP_REGIONS = 5
PRIORITY_ALERT_LIMIT = 5

# Heat weights per threat level
THREAT_WEIGHTS = {
    "low": 0.25,
    "elevated": 0.5,
    "high": 0.8,
    "critical": 1.0,
}
