# config.py
import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv()

class Config:
    # Supabase project. The anon key is enough for the routed orchestrator,
    # the service key is only needed by the orchestrator service itself.
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY')
    SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY')

    # 'orchestrator' routes every read through the edge function,
    # 'direct' queries the tables through PostgREST.
    CONTENT_TRANSPORT = os.getenv('CONTENT_TRANSPORT', 'orchestrator')
    ORCHESTRATOR_FUNCTION = os.getenv('ORCHESTRATOR_FUNCTION', 'orchestrator')

    FETCH_TIMEOUT_SECONDS = float(os.getenv('FETCH_TIMEOUT_SECONDS', '7'))
    PAGE_SIZE = 1000
    DOWNLOAD_CONCURRENCY = int(os.getenv('DOWNLOAD_CONCURRENCY', '3'))
    LANGUAGES = ('am', 'en')

    CACHE_DB_PATH = os.getenv('CACHE_DB_PATH', os.path.join(BASE_DIR, 'dse-cache.db'))
    SETTINGS_PATH = os.getenv('SETTINGS_PATH', os.path.join(BASE_DIR, 'dse-settings.json'))

    PORT = int(os.getenv('PORT', '5001'))
