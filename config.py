"""
Configuration for AI Fitness Coach
All settings come from the environment (or a local .env file)
"""

import os
from dotenv import load_dotenv

load_dotenv()

# LLM provider
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "claude-3-haiku-20240307")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

# Requests without a userId fall back to the demo account
DEMO_USER_ID = int(os.getenv("DEMO_USER_ID", "1"))

# Plan-quality evals after each generation (optional, for debugging/improvement)
RUN_EVALS = os.getenv("RUN_EVALS", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
