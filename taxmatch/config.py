import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths (local development only)
DATA_DIR = Path(os.getenv("TAXMATCH_DATA_DIR", "data"))
DB_PATH = DATA_DIR / "taxmatch.db"

# Database (PostgreSQL when set, SQLite otherwise)
DATABASE_URL = os.getenv("DATABASE_URL")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Matching settings
DEFAULT_MATCH_LIMIT = 5
MAX_MATCH_LIMIT = 20
SCORING_MAX_WORKERS = int(os.getenv("SCORING_MAX_WORKERS", "8"))

# Factor weights. Keys are FactorType values; each set sums to 1.0.
CURRENT_FACTOR_WEIGHTS = {
    "specialty": 0.35,
    "budget": 0.25,
    "location": 0.15,
    "experience": 0.15,
    "rating": 0.10,
}
LEGACY_FACTOR_WEIGHTS = {
    "specialty": 0.30,
    "budget": 0.25,
    "location": 0.20,
    "experience": 0.15,
    "rating": 0.10,
}
MATCH_WEIGHT_PROFILE = os.getenv("MATCH_WEIGHT_PROFILE", "current").lower()
FACTOR_WEIGHTS = (
    LEGACY_FACTOR_WEIGHTS if MATCH_WEIGHT_PROFILE == "legacy" else CURRENT_FACTOR_WEIGHTS
)

# Experience ladder: (minimum years, score), checked top-down
EXPERIENCE_LADDER = [
    (20, 100),
    (15, 90),
    (10, 80),
    (5, 70),
    (3, 60),
]
EXPERIENCE_FLOOR_SCORE = 40

# Reference revenue for the same-scale experience bonus (0 disables it)
AVERAGE_CLIENT_REVENUE = int(os.getenv("AVERAGE_CLIENT_REVENUE", "50000000"))
REVENUE_SIMILARITY_RATIO = 0.5
SAME_SCALE_BONUS = 10

# Statistics
HIGH_QUALITY_SCORE = 70

# Diagnoses saved within this window update the previous record
DIAGNOSIS_REUSE_HOURS = 24
