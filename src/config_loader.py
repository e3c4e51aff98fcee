"""

Configuration loader for Job Watch
Reads and validates settings.yaml
"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"


class ConfigValidationError(ValueError):
    """Raised when configuration fails invariant validation."""
    pass


def _validate_non_negative(value: Any, field: str) -> None:
    """Validate that a numeric value is non-negative."""
    if value is not None and float(value) < 0:
        raise ConfigValidationError(
            f"Invalid config: '{field}' must be non-negative, got {value}"
        )


def _validate_positive(value: Any, field: str) -> None:
    """Validate that a numeric value is positive (> 0)."""
    if value is not None and float(value) <= 0:
        raise ConfigValidationError(
            f"Invalid config: '{field}' must be positive (> 0), got {value}"
        )


def _validate_min_max_pair(min_val: Any, max_val: Any, min_field: str, max_field: str) -> None:
    """Validate that min_val <= max_val for a delay/range pair."""
    if min_val is not None and max_val is not None:
        if float(min_val) > float(max_val):
            raise ConfigValidationError(
                f"Invalid config: '{min_field}' ({min_val}) must be <= '{max_field}' ({max_val})"
            )


class ConfigLoader:
    """Loads and validates configuration from YAML file"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH, data: Optional[Dict[str, Any]] = None):
        self.config_path = Path(config_path)
        self.config: Dict[str, Any] = {}
        if data is not None:
            self.config = data
            self._validate_invariants()
        else:
            self._load()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_path: str = DEFAULT_CONFIG_PATH) -> "ConfigLoader":
        """Build a config from an in-memory mapping (used by tests and tooling)"""
        return cls(config_path, data=data)

    def _load(self) -> None:
        """Load config from YAML file"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
            logger.info(f"✓ Config loaded from {self.config_path}")
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            raise

        self._validate_invariants()

    def _validate_invariants(self) -> None:
        """Validate configuration invariants. Raises ConfigValidationError on failure."""
        # Scheduler timing
        _validate_positive(self.get('scraper.interval_minutes'), 'scraper.interval_minutes')
        _validate_non_negative(self.get('scraper.max_minutes_ago'), 'scraper.max_minutes_ago')
        _validate_positive(self.get('scraper.max_consecutive_errors'), 'scraper.max_consecutive_errors')
        _validate_non_negative(self.get('scraper.error_pause_minutes'), 'scraper.error_pause_minutes')
        _validate_non_negative(self.get('scraper.shutdown_timeout_seconds'), 'scraper.shutdown_timeout_seconds')

        # Anti-detection pacing
        nav_min = self.get('browser.navigation_delay_min')
        nav_max = self.get('browser.navigation_delay_max')
        _validate_non_negative(nav_min, 'browser.navigation_delay_min')
        _validate_non_negative(nav_max, 'browser.navigation_delay_max')
        _validate_min_max_pair(nav_min, nav_max, 'browser.navigation_delay_min', 'browser.navigation_delay_max')

        click_min = self.get('browser.click_delay_min')
        click_max = self.get('browser.click_delay_max')
        _validate_non_negative(click_min, 'browser.click_delay_min')
        _validate_non_negative(click_max, 'browser.click_delay_max')
        _validate_min_max_pair(click_min, click_max, 'browser.click_delay_min', 'browser.click_delay_max')

        # AI filter settings
        _validate_positive(self.get('ai_filter.timeout_seconds'), 'ai_filter.timeout_seconds')

        logger.debug("✓ Config invariants validated")

    def validate(self) -> List[str]:
        """Return the itemized list of settings that block the agent from starting"""
        errors: List[str] = []
        if not self.get_keywords():
            errors.append("Job search keywords are required (search.keywords)")
        if self.is_ai_enabled():
            if self.get_ai_backend() == "groq" and not os.getenv("GROQ_API_KEY", "").strip():
                errors.append("GROQ_API_KEY is required when ai_filter.backend is 'groq'")
            if not self.get_profile_summary():
                errors.append("A profile summary is required when the AI filter is enabled "
                              "(profile.summary or profile.summary_file)")
        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by dot notation (e.g., 'search.keywords')"""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k, default)
            else:
                return default

        return value

    # === Search Config ===

    def get_keywords(self) -> List[str]:
        """Get ordered list of job search keywords"""
        return [str(k).strip() for k in (self.get('search.keywords', []) or []) if str(k).strip()]

    def get_locations(self) -> List[str]:
        """Get search locations (only the first is used in the URL)"""
        return list(self.get('search.locations', ['United States']) or [])

    def get_location(self) -> str:
        """Get primary job search location"""
        locations = self.get_locations()
        return locations[0] if locations else ''

    def get_geo_id(self) -> str:
        """Get LinkedIn geoId for the primary location"""
        return str(self.get('search.geo_id', '103644278') or '')

    # === Scraper Config ===

    def get_interval_minutes(self) -> float:
        """Get minutes between scrape cycles"""
        return float(self.get('scraper.interval_minutes', 2))

    def get_max_minutes_ago(self) -> int:
        """Get max posting age kept by the time filter"""
        return int(self.get('scraper.max_minutes_ago', 10))

    def get_max_consecutive_errors(self) -> int:
        """Get consecutive cycle failures that trigger the auto-pause"""
        return int(self.get('scraper.max_consecutive_errors', 5))

    def get_error_pause_minutes(self) -> float:
        """Get auto-pause duration after repeated failures"""
        return float(self.get('scraper.error_pause_minutes', 30))

    def get_shutdown_timeout_seconds(self) -> float:
        """Get how long the agent waits for an in-flight cycle on shutdown"""
        return float(self.get('scraper.shutdown_timeout_seconds', 120))

    # === Browser Config ===

    def is_headless(self) -> bool:
        """Check if browser should run in headless mode"""
        return bool(self.get('browser.headless', True))

    def use_stealth(self) -> bool:
        """Check if Playwright stealth should be enabled"""
        return bool(self.get('browser.use_stealth', True))

    def get_navigation_delay(self) -> tuple:
        """Get (min, max) navigation delay in seconds"""
        return (
            float(self.get('browser.navigation_delay_min', 2.0)),
            float(self.get('browser.navigation_delay_max', 5.0)),
        )

    def get_click_delay(self) -> tuple:
        """Get (min, max) click delay in seconds"""
        return (
            float(self.get('browser.click_delay_min', 1.0)),
            float(self.get('browser.click_delay_max', 3.0)),
        )

    # === Storage Config ===

    def get_cookie_file(self) -> Path:
        """Get LinkedIn session cookie file path"""
        return Path(self.get('session.cookie_file', 'data/linkedin-cookies.json'))

    def get_database_path(self) -> Path:
        """Get SQLite database path"""
        return Path(self.get('database.path', 'data/jobs.db'))

    # === AI Config ===

    def is_ai_enabled(self) -> bool:
        """Check if AI relevance filtering is enabled"""
        return bool(self.get('ai_filter.enabled', False))

    def get_ai_backend(self) -> str:
        """Get AI backend name (ollama | groq)"""
        return str(self.get('ai_filter.backend', 'ollama') or 'ollama').strip().lower()

    def get_ai_model(self) -> str:
        """Get AI model name"""
        return self.get('ai_filter.model', 'llama3.1:8b')

    def get_ai_timeout_seconds(self) -> float:
        """Get hard timeout for one relevance filter call"""
        return float(self.get('ai_filter.timeout_seconds', 60))

    def get_ai_debug(self) -> bool:
        """Check if AI debug logging is enabled"""
        return bool(self.get('ai_filter.debug', False))

    # === Profile Config ===

    def get_profile_summary(self) -> str:
        """Get candidate profile summary text (inline or from file)"""
        summary = (self.get('profile.summary', '') or '').strip()
        if summary:
            return summary
        summary_file = self.get('profile.summary_file', '')
        if summary_file:
            path = Path(summary_file)
            if path.exists():
                return path.read_text(encoding='utf-8').strip()
            logger.warning("Profile summary file not found: %s", path)
        return ''

    def get_preference_rules(self) -> Dict[str, List[str]]:
        """Get relevance filter rules from profile preferences"""
        prefs = self.get('profile.preferences', {}) or {}
        return {
            'target_seniority': list(prefs.get('target_seniority', []) or []),
            'exclude_title_keywords': list(prefs.get('exclude_title_keywords', []) or []),
            'preferred_tech_stack': list(prefs.get('preferred_tech_stack', []) or []),
        }

    # === Agent Config ===

    def get_agent_log_file(self) -> Path:
        """Get log file receiving the detached agent's stdout/stderr"""
        return Path(self.get('agent.log_file', 'logs/agent.log'))

    # === Logging Config ===

    def get_log_level(self) -> str:
        """Get logging level"""
        return str(self.get('logging.level', 'INFO')).upper()

    def get_log_file(self) -> Path:
        """Get log file path with timestamp"""
        template = self.get('logging.log_file', 'logs/job_watch.log')
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = template.replace('{timestamp}', timestamp)
        return Path(filename)

    def __repr__(self) -> str:
        keywords = self.get_keywords()
        location = self.get_location()
        return f"<Config: {len(keywords)} keywords, location={location}>"


# Convenience function
def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ConfigLoader:
    """Load configuration from file"""
    return ConfigLoader(config_path)
