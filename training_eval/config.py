import os
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/training_eval")
DB_NAME = os.getenv("DB_NAME", "training_eval")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "training_eval_session")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "12"))

# seeded at startup when both are set
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# split | four_point | five_point
RATING_SCALE = os.getenv("RATING_SCALE", "split")

BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
