"""
Configuration et utilitaires partagés
"""

import os
import hashlib
import secrets
from datetime import datetime, timezone, timedelta
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'crm_database')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
SESSION_DAYS = int(os.environ.get('SESSION_DAYS', '7'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def session_expiry_iso() -> str:
    return (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

def bump_iso(previous: str = None) -> str:
    """
    Horodatage ISO strictement postérieur à `previous`.
    Sert à remonter un contact dans les listes triées par updated_at,
    même si l'horloge n'a pas avancé depuis la dernière écriture.
    """
    now = datetime.now(timezone.utc)
    if previous:
        try:
            prev = datetime.fromisoformat(previous)
        except ValueError:
            return now.isoformat()
        if prev.tzinfo is None:
            prev = prev.replace(tzinfo=timezone.utc)
        if now <= prev:
            now = prev + timedelta(microseconds=1)
    return now.isoformat()
