# tender_eval/config.py
import os
from dotenv import load_dotenv


def _load_task_models(prefix: str, default_key: str) -> dict:
    models: dict[str, str] = {}
    for key, value in os.environ.items():
        if key.startswith(prefix) and key != default_key and value:
            task = key[len(prefix):].lower()
            models[task] = value
    return models


def _read_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def load_settings() -> dict:
    load_dotenv()
    default_llm = os.getenv("OPENAI_LLM_MODEL_DEFAULT") or os.getenv("OPENAI_LLM_MODEL")
    return {
        "DATABASE_URL": os.getenv("DATABASE_URL", "postgresql://localhost:5432/tender_eval"),
        "OPENAI_API_KEY": os.getenv("OPENAI_API_KEY"),
        "OPENAI_BASE_URL": os.getenv("OPENAI_BASE_URL"),
        "OPENAI_LLM_MODEL_DEFAULT": default_llm,
        "OPENAI_LLM_MODELS": _load_task_models("OPENAI_LLM_MODEL_", "OPENAI_LLM_MODEL_DEFAULT"),
        "OPENAI_TIMEOUT": _read_float("OPENAI_TIMEOUT", 0.0),
        "OPENAI_MAX_RETRIES": _read_int("OPENAI_MAX_RETRIES", 0),
        "TENDER_EVAL_DISPUTE_WINDOW_DAYS": _read_int("TENDER_EVAL_DISPUTE_WINDOW_DAYS", 7),
        "TENDER_EVAL_ORACLE_CALL_TIMEOUT": _read_float("TENDER_EVAL_ORACLE_CALL_TIMEOUT", 0.0),
        "TENDER_EVAL_COMMIT_RETRIES": _read_int("TENDER_EVAL_COMMIT_RETRIES", 3),
    }
