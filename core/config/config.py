"""
Configuration loader for the Invoice Memory Agent
"""
import os
import yaml
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables
load_dotenv()


class Config:
    """Application configuration"""

    # Pattern store
    MEMORY_FILE_PATH = os.getenv('MEMORY_FILE_PATH', './memory.json')

    # Audit database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./memory_agent.db')
    AUDIT_DB_ENABLED = os.getenv('AUDIT_DB_ENABLED', 'True').lower() == 'true'

    # Decision policy
    REVIEW_THRESHOLD = float(os.getenv('REVIEW_THRESHOLD', '0.8'))
    LOW_CONFIDENCE_THRESHOLD = float(os.getenv('LOW_CONFIDENCE_THRESHOLD', '0.7'))

    # Memory policy
    DECAY_RATE = float(os.getenv('DECAY_RATE', '0.01'))

    # Application Settings
    APP_HOST = os.getenv('APP_HOST', '0.0.0.0')
    APP_PORT = int(os.getenv('APP_PORT', '8000'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE')

    @classmethod
    def load_rules_config(cls):
        """Load extraction and learning rules from YAML"""
        config_path = Path(os.getenv('RULES_CONFIG_PATH', Path(__file__).parent / 'rules.yaml'))
        if config_path.exists():
            with open(config_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        return {}


# Create singleton instance
config = Config()
