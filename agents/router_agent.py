from pydantic_ai import Agent
from pydantic_ai.models import Model

from core.intent import Intention

CLASSIFICATION_POLICY = (
    "- Greetings, thanks or farewells (\"hola\", \"gracias\", \"chao\") -> GREETING, all parameters null.\n"
    "- Vague wellbeing or status questions (\"cómo voy\", \"resumen\", \"balance\", \"saldo\", "
    "\"¿tengo plata?\") -> BALANCE.\n"
    "- Requests naming a category, a date or a transaction word (\"gastos en comida\", "
    "\"ingresos de enero\", \"movimientos de ayer\") -> TRANSACTIONS, filling category, "
    "startDate and endDate when they can be extracted.\n"
    "- Questions about what the assistant can do -> HELP.\n"
    "- Anything else -> OTHER.\n"
)

SYSTEM_PROMPT = (
    "You are the routing step of a personal-finance assistant for Chilean users. "
    "Classify the user's message into exactly one intent and extract its parameters.\n\n"
    "Rules:\n"
    f"{CLASSIFICATION_POLICY}\n"
    "Parameters:\n"
    "- category: the spending category or keyword as the user wrote it, lowercase, or null.\n"
    "- startDate / endDate: inclusive bounds in YYYY-MM-DD resolved against today's date, or null. "
    "A month name means the whole month (\"enero\" -> first to last day of January of the most "
    "recent January not in the future).\n"
    "Never omit a parameter: use null when it does not apply."
)


def build_router_agent(model: Model) -> Agent[None, Intention]:
    return Agent(
        model,
        system_prompt=SYSTEM_PROMPT,
        output_type=Intention,
        retries=1,
    )
