"""Agent Configuration"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path, override=True)
else:
    load_dotenv(override=True)


class AgentConfig:
    """Configuration for HaemoFlow agents"""

    # Public URL used in donor response links
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:8000")

    # LLM Configuration (Groq/Llama 3.3 70B)
    DEFAULT_LLM_MODEL: str = os.getenv("DEFAULT_LLM_MODEL", "llama-3.3-70b-versatile")
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")

    # Task queue
    TASK_MAX_ATTEMPTS: int = int(os.getenv("TASK_MAX_ATTEMPTS", "3"))

    # Donor response window before falling back to inventory
    RESPONSE_WINDOW_MINUTES: int = int(os.getenv("RESPONSE_WINDOW_MINUTES", "60"))

    # IANA zone of the hospitals served; rush-hour and business-hour bands use its local time
    LOCAL_TIMEZONE: str = os.getenv("LOCAL_TIMEZONE", "UTC")

    LANGSMITH_PROJECT: str = os.getenv("LANGSMITH_PROJECT", "haemoflow")

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration"""
        required = ["APP_BASE_URL", "DEFAULT_LLM_MODEL"]
        for var in required:
            if not getattr(cls, var):
                raise ValueError(f"Missing required config: {var}")
        if cls.TASK_MAX_ATTEMPTS < 1:
            raise ValueError("TASK_MAX_ATTEMPTS must be at least 1")
        return True
