import os

# --- Storage ---
DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
DB_PATH = os.getenv("DB_PATH", os.path.join(DATA_DIR, "db.json"))
DRAFT_CACHE_PATH = os.getenv("DRAFT_CACHE_PATH", os.path.join(DATA_DIR, "drafts.json"))
DRAFT_CACHE_LIMIT = int(os.getenv("DRAFT_CACHE_LIMIT", "50"))  # Unsaved generated forms kept

# --- Sharing / export ---
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
MASTER_SPREADSHEET_ID = os.getenv("MASTER_SPREADSHEET_ID")  # Spreadsheet to host tabs per form
SERVICE_ACCOUNT_JSON = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON")  # JSON string or path

# --- Generation ---
AI_PROVIDER = os.getenv("AI_PROVIDER")  # "openai" | "ollama" | unset (auto)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
AI_BASE_URL = os.getenv("AI_BASE_URL")
AI_MODEL = os.getenv("AI_MODEL")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434/v1")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
