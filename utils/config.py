"""
Configuration module for Infinite Bitcoin Text
Handles API key lookup, proxy URLs, model names and feed timings
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Constants
APP_NAME = "the-infinite-bitcoin-text"
APP_TITLE = "The Infinite Bitcoin Text"

# Upstream provider (used by the proxy only)
OPENROUTER_API_URL = "https://openrouter.ai/api/v1"
PROXY_MODEL = "google/gemini-2.5-flash-lite-preview-09-2025"
DEFAULT_PRODUCTION_DOMAIN = "infinitebitcointext.com"

# Client side: the proxy overrides this model, it is sent for completeness
CLIENT_MODEL = "x-ai/grok-4.1-fast"
DEFAULT_API_BASE_URL = "http://127.0.0.1:8000"
PROXY_PATH = "/openrouter"
REQUEST_TIMEOUT = 60.0  # seconds

# Generation settings
TEXT_TEMPERATURE = 0.35
TREE_TEMPERATURE = 0.4

# Feed settings
RECENT_TOPIC_WINDOW = 10
EXCLUSION_HINT_SIZE = 3
MIN_LOADING_SECONDS = 0.8


def get_api_base_url() -> str:
    """Base URL of the proxy, without trailing slash"""
    base = os.environ.get("API_BASE_URL") or DEFAULT_API_BASE_URL
    return base.rstrip("/")


def get_proxy_url() -> str:
    """Full URL of the generation proxy endpoint"""
    return f"{get_api_base_url()}{PROXY_PATH}"


def load_api_key() -> Optional[str]:
    """Load the OpenRouter API key from the environment (proxy side)"""
    return os.environ.get("OPENROUTER_API_KEY") or None


def get_cors_allow_origin() -> Optional[str]:
    """Explicit origin allowed for deployed (non-local) requests"""
    return os.environ.get("CORS_ALLOW_ORIGIN") or None


def get_production_domain() -> str:
    """Domain whose Origin/Referer is accepted by the proxy"""
    return os.environ.get("PRODUCTION_DOMAIN") or DEFAULT_PRODUCTION_DOMAIN
