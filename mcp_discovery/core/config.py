import os
from dotenv import load_dotenv

# Carregar variáveis do arquivo .env
load_dotenv()


class Settings:
    # Search: Perplexity (API compatível com OpenAI)
    PERPLEXITY_API_KEY: str = os.getenv("PERPLEXITY_API_KEY", "")
    PERPLEXITY_BASE_URL: str = os.getenv("PERPLEXITY_BASE_URL", "https://api.perplexity.ai")
    PERPLEXITY_MODEL: str = os.getenv("PERPLEXITY_MODEL", "llama-3.1-sonar-small-128k-online")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Adaptive learning: arquivo opcional para persistir feedback
    LEARNING_DATA_PATH: str = os.getenv("LEARNING_DATA_PATH", "")


settings = Settings()
