"""Global pytest configuration."""

import os

# Keep tests offline: no reasoner, no live discovery, no knowledge base, no weather
os.environ["OPENAI_API_KEY"] = ""
os.environ["EVENTFINDA_USERNAME"] = ""
os.environ["EVENTFINDA_PASSWORD"] = ""
os.environ["SCRAPER_API_KEY"] = ""
os.environ["KNOWLEDGE_BASE_BASE_URL"] = ""
os.environ.setdefault("WEATHER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
