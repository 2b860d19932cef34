"""
Centralized configuration for the Tri-Stack game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.card_values.to_dict())
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class CardValues:
    """Card point values. Numerals always score face value."""
    ACE: int = 1
    FACE: int = 10  # J, Q, K

    def to_dict(self) -> dict[str, int]:
        """Get card values keyed by rank string."""
        values = {"A": self.ACE}
        for n in range(2, 11):
            values[str(n)] = n
        values.update({"J": self.FACE, "Q": self.FACE, "K": self.FACE})
        return values


@dataclass
class ScoringRules:
    """Caller penalties and bot thresholds."""
    TIE_PENALTY: int = 25
    MISCALL_PENALTY: int = 50
    BOT_SHOW_THRESHOLD: int = 5


@dataclass
class GameDefaults:
    """Default match settings."""
    rounds: int = 5
    bot_think_seconds: float = 1.5


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Shared room record + pub/sub
    REDIS_URL: str = "redis://localhost:6379/0"

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 7
    ROOM_CODE_LENGTH: int = 4

    # Local session file used for reconnection
    SESSION_FILE: str = str(Path.home() / ".tristack" / "session.json")

    card_values: CardValues = field(default_factory=CardValues)
    scoring: ScoringRules = field(default_factory=ScoringRules)
    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "127.0.0.1"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL", "redis://localhost:6379/0"),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 7),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 4),
            SESSION_FILE=get_env(
                "SESSION_FILE", str(Path.home() / ".tristack" / "session.json")
            ),
            card_values=CardValues(
                ACE=get_env_int("CARD_ACE", 1),
                FACE=get_env_int("CARD_FACE", 10),
            ),
            scoring=ScoringRules(
                TIE_PENALTY=get_env_int("TIE_PENALTY", 25),
                MISCALL_PENALTY=get_env_int("MISCALL_PENALTY", 50),
                BOT_SHOW_THRESHOLD=get_env_int("BOT_SHOW_THRESHOLD", 5),
            ),
            game_defaults=GameDefaults(
                rounds=get_env_int("DEFAULT_ROUNDS", 5),
                bot_think_seconds=get_env_float("BOT_THINK_SECONDS", 1.5),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
