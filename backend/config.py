"""Configuration management for the document search RAG console."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_TABLE = os.getenv("SUPABASE_TABLE", "document_chunks")

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
EVENT_LOG_PATH = os.getenv("EVENT_LOG_PATH", "logs/rag_events.jsonl")

# Model Configuration
EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "huggingface")  # "huggingface" or "ollama"
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_API_URL = os.getenv("EMBEDDING_API_URL")  # overrides the provider default
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
TOKENIZER_MODEL = os.getenv("TOKENIZER_MODEL", "sentence-transformers/all-mpnet-base-v2")
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama-3.1-8b-instant")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.0"))

# Local inference can be slow, so external calls get 5 minutes
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "300"))

# Chunking Configuration
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "120"))  # tokens
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "30"))  # tokens
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "10"))

# Retrieval Configuration
TOP_K = int(os.getenv("TOP_K", "5"))

# Answer Configuration
MAX_ANSWER_LINES = 5
FALLBACK_ANSWER = os.getenv(
    "FALLBACK_ANSWER",
    "Sorry, I don't have that information at the moment."
)

# Documents Configuration
DOCUMENTS_DIR = os.getenv("DOCUMENTS_DIR", "Files")
DEFAULT_DOCUMENT_TAGS = os.getenv("DEFAULT_DOCUMENT_TAGS", "source=internal")
EXIT_COMMANDS = ("exit", "sair")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
