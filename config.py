import logging
import os
from dotenv import load_dotenv

load_dotenv()

TG_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
PROXY_URL = os.getenv('PROXY_URL')

DB_PATH = os.getenv(
    'RECODE_DB_PATH',
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'recode.db'),
)

LOG_LEVEL = os.getenv('RECODE_LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL, logging.INFO)
)
# polling requests are logged at INFO by httpx
logging.getLogger('httpx').setLevel(logging.WARNING)
