"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Project root (directory holding the smart_dairy package)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent

# Storage: SQLite database and upload directories
DATA_DIR: Path = Path(os.getenv("SMART_DAIRY_DATA_DIR", "").strip() or PROJECT_ROOT / "data")
DB_PATH: Path = Path(os.getenv("SMART_DAIRY_DB_PATH", "").strip() or DATA_DIR / "smart_dairy.db")
DOCUMENT_UPLOAD_DIR: Path = DATA_DIR / "uploads" / "documents"
FARM_DATA_UPLOAD_DIR: Path = DATA_DIR / "uploads" / "farm-data"

# Allowed file extensions per upload kind
DOCUMENT_EXTENSIONS: frozenset[str] = frozenset({".pdf", ".txt"})
FARM_DATA_EXTENSIONS: frozenset[str] = frozenset({".csv", ".xlsx", ".xls"})

# Chunking defaults (tuning these affects retrieval quality)
CHUNK_SIZE: int = 1000
CHUNK_OVERLAP: int = 200
MIN_CHUNK_CHARS: int = 50
MIN_EXTRACTED_CHARS: int = 100

# Document retrieval
RETRIEVAL_TOP_K: int = 5
FRAGMENT_CANDIDATE_LIMIT: int = int(os.getenv("FRAGMENT_CANDIDATE_LIMIT", "20"))

# Web lookup and its cache
WEB_CACHE_TTL_SECONDS: float = 3600.0
WEB_SEARCH_RESULTS: int = 5
WEB_SEARCH_QUALIFIER: str = "dairy farming"

# LLM: OpenAI-compatible endpoint (Ollama by default), Hugging Face router as fallback
LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "http://ollama:11434/v1").strip()
LLM_MODEL: str = os.getenv("LLM_MODEL", "llama3").strip() or "llama3"
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()
HF_LLM_MODEL: str = (
    os.getenv("HF_LLM_MODEL", "meta-llama/Llama-3.2-3B-Instruct").strip()
    or "meta-llama/Llama-3.2-3B-Instruct"
)
HF_CHAT_URL: str = "https://router.huggingface.co/v1/chat/completions"
LLM_API_TIMEOUT: float = 60.0
LLM_MAX_TOKENS: int = 1024

# Conversations
DEFAULT_SESSION_TITLE: str = "New Conversation"
TITLE_MAX_CHARS: int = 50
