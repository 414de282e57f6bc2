"""AI-drafted vehicle listing descriptions."""

from __future__ import annotations

import logging
from dataclasses import replace

from autocars_mcp.app import AppContext
from autocars_mcp.clients.gemini import GeminiClient, GeminiClientError
from autocars_mcp.data.models import Vehicle
from autocars_mcp.tools.formatting import session_error

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "Chave de API indisponível. Verifique a configuração."
EMPTY_RESULT_MESSAGE = "Não foi possível gerar a descrição."
FAILURE_MESSAGE = "Erro ao gerar descrição com IA. Tente novamente."


def build_description_prompt(vehicle: Vehicle) -> str:
    return (
        "Crie uma descrição atraente, profissional e orientada para vendas para um "
        "anúncio de loja de carros.\n"
        "Detalhes do Veículo:\n"
        f"- Marca: {vehicle.make}\n"
        f"- Modelo: {vehicle.model}\n"
        f"- Ano: {vehicle.year}\n"
        f"- Versão: {vehicle.version}\n"
        f"- Quilometragem: {vehicle.mileage} km\n"
        f"- Cor: {vehicle.color}\n"
        f"- Combustível: {vehicle.fuel}\n\n"
        "O tom deve ser convidativo e confiável. Destaque a baixa quilometragem se "
        "aplicável. Mantenha o texto abaixo de 150 palavras. Responda APENAS em "
        "Português do Brasil. Não use markdown."
    )


async def draft_description(api_key: str, model: str, vehicle: Vehicle) -> str:
    """Return generated text, or a placeholder message on any failure."""
    if not api_key:
        return MISSING_KEY_MESSAGE
    try:
        async with GeminiClient(api_key, model=model) as client:
            text = await client.generate_text(build_description_prompt(vehicle))
    except GeminiClientError as exc:
        logger.warning("Description generation failed: %s (%s)", exc, exc.code)
        return FAILURE_MESSAGE
    return text or EMPTY_RESULT_MESSAGE


async def generate_vehicle_description_impl(
    app: AppContext,
    *,
    vehicle_id: str = "",
    make: str = "",
    model: str = "",
    year: int = 0,
    version: str = "",
    mileage: int = 0,
    color: str = "",
    fuel: str = "",
    save: bool = False,
) -> str:
    """Draft a listing description for a stored vehicle or for the given fields."""
    vehicle: Vehicle | None = None
    if vehicle_id.strip():
        error = session_error(app)
        if error:
            return error
        vehicle = app.router.data.vehicles.get(vehicle_id.strip())
        if vehicle is None:
            return f"Error: vehicle {vehicle_id} not found."
    else:
        if not make.strip() or not model.strip():
            return "Error: give a vehicle_id, or at least make and model."
        vehicle = Vehicle(
            id="draft",
            make=make.strip(),
            model=model.strip(),
            year=year,
            version=version.strip(),
            mileage=mileage,
            color=color.strip(),
            fuel=fuel.strip(),
        )

    settings = app.settings
    text = await draft_description(settings.gemini_api_key, settings.gemini_model, vehicle)
    if save and vehicle_id.strip() and text not in (
        MISSING_KEY_MESSAGE,
        EMPTY_RESULT_MESSAGE,
        FAILURE_MESSAGE,
    ):
        await app.router.update_vehicle(replace(vehicle, description=text))
    return text
