import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from pydantic_ai import Agent, RunContext
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.models import Model

from agents.router_agent import CLASSIFICATION_POLICY
from core.intent import IntentParameters
from executors.base import NO_DATA_CONTEXT
from executors.capability_executor import CapabilityExecutor
from services.utils import log_chat_event


@dataclass
class ChatDeps:
    identity: str
    executor: CapabilityExecutor
    today: date
    max_tool_rounds: int
    # Context from the classification pre-pass, if it ran
    context_text: Optional[str] = None
    tool_calls: list = field(default_factory=list)


def enter_tool_round(ctx: RunContext[ChatDeps]) -> None:
    """
    Tools answering model response N run with run_step N. Raises
    UsageLimitExceeded before a tool of round max_tool_rounds + 1 does anything.
    """
    if ctx.run_step > ctx.deps.max_tool_rounds:
        raise UsageLimitExceeded(
            f"Tool round {ctx.run_step} exceeds the limit of {ctx.deps.max_tool_rounds}"
        )


def build_instructions(deps: ChatDeps) -> str:
    context = deps.context_text or (
        "No hay datos precargados. Si la pregunta necesita datos financieros, "
        "usa las herramientas disponibles."
    )
    return (
        "Eres FinanzasIA, el asistente de finanzas personales del usuario. "
        "Responde SIEMPRE en español, de forma breve y cercana.\n"
        f"Hoy es {deps.today.isoformat()}.\n\n"
        "CONTEXTO DE DATOS (del sistema):\n"
        "--------------------------------\n"
        f"{context}\n"
        "--------------------------------\n\n"
        "Cómo interpretar los mensajes:\n"
        f"{CLASSIFICATION_POLICY}\n"
        "INSTRUCCIONES:\n"
        "1. Usa los datos del contexto para responder; nunca inventes montos ni movimientos.\n"
        f"2. Si el contexto dice \"{NO_DATA_CONTEXT}\" responde de forma conversacional, "
        "o consulta una herramienta si el usuario pide datos.\n"
        "3. Si hay montos, usa negritas y pesos chilenos (**$100.000**).\n"
        "4. Si el listado indica más movimientos de los mostrados, dilo (\"N en total, mostrando M\").\n"
        "5. Si la lista de movimientos está vacía, díselo al usuario amablemente.\n"
        "6. Si el contexto indica un error técnico, discúlpate y sugiere intentar más tarde."
    )


def build_conversation_agent(model: Model) -> Agent[ChatDeps, str]:
    agent = Agent(
        model,
        deps_type=ChatDeps,
        output_type=str,
    )

    @agent.instructions
    def chat_instructions(ctx: RunContext[ChatDeps]) -> str:
        return build_instructions(ctx.deps)

    @agent.tool
    async def consultar_balance(ctx: RunContext[ChatDeps]) -> str:
        """Balance total del usuario y totales del mes en curso (ingresos, gastos, cantidad de movimientos)."""
        enter_tool_round(ctx)
        capability = ctx.deps.executor.balance
        # Shielded: a client disconnect must not cut a tool round in half
        context = await asyncio.shield(capability.run(ctx.deps.identity))
        ctx.deps.tool_calls.append(capability.name)
        log_chat_event("executor", path="tool", capability=capability.name, user_id=ctx.deps.identity)
        return context.text

    @agent.tool
    async def consultar_movimientos(
        ctx: RunContext[ChatDeps],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[str] = None,
    ) -> str:
        """Movimientos del usuario en un rango de fechas inclusivo, opcionalmente filtrados por categoría.

        Args:
            start_date: Fecha inicial YYYY-MM-DD, o null para no acotar.
            end_date: Fecha final YYYY-MM-DD, o null para no acotar.
            category: Categoría o palabra clave (ej: comida, super), o null.
        """
        enter_tool_round(ctx)
        capability = ctx.deps.executor.transactions
        params = IntentParameters(category=category, startDate=start_date, endDate=end_date)
        context = await asyncio.shield(capability.run(ctx.deps.identity, params))
        ctx.deps.tool_calls.append(capability.name)
        log_chat_event("executor", path="tool", capability=capability.name, user_id=ctx.deps.identity)
        return context.text

    return agent
