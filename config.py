import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv('DATABASE_URL')
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

API_KEY = os.getenv('GEMINI_API_KEY')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-1.5-flash')
API_URL = os.getenv(
    'API_URL',
    f"https://generativelanguage.googleapis.com/v1beta/models/{GEMINI_MODEL}:generateContent?key={API_KEY}",
)
LLM_TIMEOUT_SECONDS = float(os.getenv('LLM_TIMEOUT_SECONDS', '120'))
LLM_RETRIES = int(os.getenv('LLM_RETRIES', '3'))
LLM_BACKOFF_FACTOR = int(os.getenv('LLM_BACKOFF_FACTOR', '2'))

# Grading worker
GRADING_RETRIES = int(os.getenv('GRADING_RETRIES', '2'))
GRADING_EXECUTOR = os.getenv('GRADING_EXECUTOR', 'thread')  # 'thread' or 'inline'
GRADING_MAX_WORKERS = int(os.getenv('GRADING_MAX_WORKERS', '2'))
GRADING_LEASE_SECONDS = int(os.getenv('GRADING_LEASE_SECONDS', '900'))
