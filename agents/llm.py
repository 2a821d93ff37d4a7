from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from configurations.config import GEMINI_MODEL_NAME, get_env_var


def build_model(model_name: str = GEMINI_MODEL_NAME) -> GoogleModel:
    """Provider & model setup. Needs GOOGLE_API_KEY at call time."""
    provider = GoogleProvider(api_key=get_env_var("GOOGLE_API_KEY"))
    return GoogleModel(model_name, provider=provider)
