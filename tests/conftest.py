import os

# Keep test runs from writing log files or picking up a developer's .env keys.
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")
