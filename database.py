from pymongo import MongoClient

from config import get_settings

_settings = get_settings()

client = None
db = None

if _settings.database_url and _settings.database_name:
    # MongoClient connects lazily, importing this module never blocks
    client = MongoClient(_settings.database_url)
    db = client[_settings.database_name]
