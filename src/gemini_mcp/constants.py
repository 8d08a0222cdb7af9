"""
Project-wide constants for the Gemini MCP server
"""  # noqa: D200, D212, D415

# ==============================================================================
# API and Network Configuration
# ==============================================================================

# Retry and timeout settings
MAX_RETRIES = 2
RETRY_BASE_DELAY = 1.0  # seconds
RETRY_MAX_DELAY = 10.0  # seconds
RETRY_JITTER_RANGE = (0.5, 1.5)  # multiplier applied to each backoff delay
NETWORK_TIMEOUT = 90.0  # seconds

# ==============================================================================
# Model Defaults
# ==============================================================================

DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_SEARCH_MODEL = "gemini-2.5-flash-lite"
DEFAULT_TEMPERATURE = 0.4

# Fraction of the context window used for max output tokens when unspecified
ASK_MAX_TOKENS_RATIO = 0.75
SEARCH_MAX_TOKENS_RATIO = 0.5

DEFAULT_SYSTEM_PROMPT = """
You are a senior developer. Your job is to do a thorough code review of this code.
You should write it up and output markdown.
Include line numbers, and contextual info.
Your code review will be passed to another teammate, so be thorough.
Think deeply  before writing the code review. Review every part, and don't hallucinate.
"""

DEFAULT_SEARCH_SYSTEM_PROMPT = """
You are a helpful search assistant. Use the Google Search results to provide accurate and up-to-date information.
Your answers should be comprehensive but concise, focusing on the most relevant information.
Cite your sources when appropriate and maintain a neutral, informative tone.
If the search results don't contain enough information to fully answer the query, acknowledge the limitations.
"""

EMPTY_RESPONSE_MESSAGE = (
    "The Gemini model returned an empty response. This might indicate that the "
    "model couldn't generate an appropriate response for your query. Please try "
    "rephrasing your question or providing more context."
)
EMPTY_SEARCH_MESSAGE = (
    "The search returned no results or the model could not generate a response. "
    "Please try rephrasing your query."
)

# ==============================================================================
# Thinking Configuration
# ==============================================================================

THINKING_BUDGET_LEVELS = {
    "none": 0,
    "low": 4096,
    "medium": 16384,
    "high": 24576,  # Maximum allowed by Gemini
}
DEFAULT_THINKING_LEVEL = "low"
MAX_THINKING_BUDGET = THINKING_BUDGET_LEVELS["high"]

# ==============================================================================
# File Processing Configuration
# ==============================================================================

_KB = 1024
_MB = 1024 * _KB

MAX_FILE_SIZE = 10 * _MB
FILE_LIFETIME = 24 * 3600  # Upstream file expiry when none is reported, seconds

DEFAULT_ALLOWED_FILE_TYPES = (
    "text/plain",
    "text/javascript",
    "text/typescript",
    "text/markdown",
    "text/html",
    "text/css",
    "application/json",
    "text/yaml",
    "application/octet-stream",
)

# ==============================================================================
# Cache Configuration
# ==============================================================================

DEFAULT_CACHE_TTL = "1h"
CACHE_NAME_PREFIX = "cachedContents/"
FILE_NAME_PREFIX = "files/"
MODEL_NAME_PREFIX = "models/"

# ==============================================================================
# GitHub Fetch Configuration
# ==============================================================================

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_ACCEPT = "application/vnd.github.raw+json"
GITHUB_MAX_CONCURRENT_FETCHES = 4
GITHUB_FETCH_ATTEMPTS = 3
MAX_GITHUB_FILES = 20
MAX_GITHUB_FILE_SIZE = 1 * _MB
GITHUB_RATE_LIMIT_MAX_WAIT = 10.0  # seconds; longer resets surface as errors

# ==============================================================================
# Transport Configuration
# ==============================================================================

DEFAULT_HTTP_HOST = "localhost"
DEFAULT_HTTP_PORT = 8080
