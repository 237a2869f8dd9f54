import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    # API Keys (all optional, the cascade still works with keyless sources)
    ALPHA_VANTAGE_API_KEY = os.getenv('ALPHA_VANTAGE_API_KEY')
    FINNHUB_API_KEY = os.getenv('FINNHUB_API_KEY')

    # Outbound relay, e.g. http://localhost:3000/api/proxy
    PROXY_URL = os.getenv('PROXY_URL')

    # Provider behaviour
    PROVIDER_TIMEOUT = float(os.getenv('PROVIDER_TIMEOUT', 8))
    RATE_LIMIT_MAX_CALLS = int(os.getenv('RATE_LIMIT_MAX_CALLS', 4))  # Alpha Vantage allows 5/min
    RATE_LIMIT_WINDOW = float(os.getenv('RATE_LIMIT_WINDOW', 60))

    # News
    NEWS_LIMIT = int(os.getenv('NEWS_LIMIT', 10))
    NEWS_PER_SOURCE = int(os.getenv('NEWS_PER_SOURCE', 5))

    # Live prices
    LIVE_WINDOW = int(os.getenv('LIVE_WINDOW', 20))
    LIVE_REFRESH_INTERVAL = float(os.getenv('LIVE_REFRESH_INTERVAL', 30))

    # Session
    STARTING_CASH = float(os.getenv('STARTING_CASH', 100000))
    HISTORY_WINDOW_DAYS = int(os.getenv('HISTORY_WINDOW_DAYS', 30))
    DEFAULT_SYMBOL = os.getenv('DEFAULT_SYMBOL', 'AAPL')
    DEFAULT_DATE = os.getenv('DEFAULT_DATE', '2020-01-01')
    DEFAULT_TIME = os.getenv('DEFAULT_TIME', '09:30')

    # Server Configuration
    PORT = int(os.getenv('PORT', 8000))
    HOST = os.getenv('HOST', '0.0.0.0')
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Environment
    ENV = os.getenv('NODE_ENV', 'development')
    DEBUG = ENV == 'development'

# Create configuration instance
config = Config()
