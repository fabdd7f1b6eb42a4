from dotenv import load_dotenv # type: ignore
import os
from pathlib import Path


# Load environment variables from .env file
load_dotenv()

# MongoDB connection
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "Proctoring-Backend")

# Recordings
RECORDINGS_DIR = Path(os.getenv("RECORDINGS_DIR", "data/recordings"))
RECORDING_EXTENSIONS = tuple(
    ext.strip().lower()
    for ext in os.getenv("RECORDING_EXTENSIONS", ".webm,.mp4").split(",")
    if ext.strip()
)
STREAM_CHUNK_SIZE = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))

# Event deduplication and debounce windows
DEDUP_BUCKET_MS = int(os.getenv("DEDUP_BUCKET_MS", "5000"))
DEFAULT_COOLDOWN_SECONDS = float(os.getenv("DEFAULT_COOLDOWN_SECONDS", "5"))
ABSENCE_COOLDOWN_SECONDS = float(os.getenv("ABSENCE_COOLDOWN_SECONDS", "10"))
OBSERVATION_QUEUE_SIZE = int(os.getenv("OBSERVATION_QUEUE_SIZE", "64"))
OBJECT_CONFIDENCE_THRESHOLD = float(os.getenv("OBJECT_CONFIDENCE_THRESHOLD", "0.7"))

# Client side (monitor -> service)
SERVICE_URL = os.getenv("SERVICE_URL", "http://localhost:8000")
CLIENT_TIMEOUT_SECONDS = float(os.getenv("CLIENT_TIMEOUT_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
