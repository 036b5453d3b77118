"""Message catalogs for user-facing error and notification text.

Catalog entries use ``str.format`` placeholders. Lookups fall back to English
and finally to the key itself so a missing translation never breaks a response.
"""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_LANGUAGE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "authenticationRequired": "User authentication required",
        "forbidden": "You do not have permission to perform this action",
        "internalError": "Internal server error",
        "routeNotFound": "Route not found",
        "validationFailed": "Validation failed",
        "abTestNotFound": "A/B test not found",
        "vendorNotFound": "Vendor not found",
        "payoutNotFound": "Payout not found",
        "rewardNotFound": "Reward not found",
        "redemptionNotFound": "Redemption not found",
        "programNotFound": "Loyalty program not found",
        "orderNotFound": "Order not found",
        "taxRateNotFound": "Tax rate not found",
        "currencyNotFound": "Currency with code {code} not found",
        "countryNotFound": "Country with code {code} not found",
        "notificationNotFound": "Notification not found",
        "jobNotFound": "Job {name} not found",
        "conversionParamsRequired": "Amount, from currency, and to currency are required",
        "invalidAmount": "Invalid amount",
        "countryRequired": "Country is required",
        "amountAndCountryRequired": "Amount and country are required",
        "dateRangeInvalid": "Start date cannot be after end date",
        "insufficientPoints": "Insufficient points for this reward",
        "emailQueued": "Email queued successfully",
        "jobStarted": "Job {name} started",
        "jobStopped": "Job {name} stopped",
        "jobExecuted": "Job {name} executed",
        "allJobsStarted": "All jobs started",
        "allJobsStopped": "All jobs stopped",
        "jobAdded": "Job {name} added",
        "jobRemoved": "Job {name} removed",
        "jobExists": "Job {name} already exists",
    },
    "es": {
        "authenticationRequired": "Se requiere autenticación de usuario",
        "forbidden": "No tiene permiso para realizar esta acción",
        "internalError": "Error interno del servidor",
        "routeNotFound": "Ruta no encontrada",
        "validationFailed": "La validación ha fallado",
        "abTestNotFound": "Prueba A/B no encontrada",
        "vendorNotFound": "Vendedor no encontrado",
        "payoutNotFound": "Pago no encontrado",
        "rewardNotFound": "Recompensa no encontrada",
        "redemptionNotFound": "Canje no encontrado",
        "programNotFound": "Programa de fidelidad no encontrado",
        "orderNotFound": "Pedido no encontrado",
        "taxRateNotFound": "Tasa de impuesto no encontrada",
        "currencyNotFound": "Moneda con código {code} no encontrada",
        "countryNotFound": "País con código {code} no encontrado",
        "notificationNotFound": "Notificación no encontrada",
        "jobNotFound": "Tarea {name} no encontrada",
        "conversionParamsRequired": "Se requieren la cantidad, la moneda de origen y la moneda de destino",
        "invalidAmount": "Cantidad no válida",
        "countryRequired": "Se requiere el país",
        "amountAndCountryRequired": "Se requieren la cantidad y el país",
        "dateRangeInvalid": "La fecha de inicio no puede ser posterior a la fecha de fin",
        "insufficientPoints": "Puntos insuficientes para esta recompensa",
        "emailQueued": "Correo electrónico en cola",
        "jobStarted": "Tarea {name} iniciada",
        "jobStopped": "Tarea {name} detenida",
        "jobExecuted": "Tarea {name} ejecutada",
        "allJobsStarted": "Todas las tareas iniciadas",
        "allJobsStopped": "Todas las tareas detenidas",
        "jobAdded": "Tarea {name} añadida",
        "jobRemoved": "Tarea {name} eliminada",
        "jobExists": "La tarea {name} ya existe",
    },
}


def translate(key: str, language: str | None = None, **params: object) -> str:
    lang = (language or DEFAULT_LANGUAGE).lower()
    template = MESSAGES.get(lang, {}).get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key)
    if template is None:
        return key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template


def negotiate_language(
    explicit: str | None, accept_language: str | None, supported: Iterable[str], default: str
) -> str:
    """Pick the response language.

    An explicit ``?lang=`` wins; otherwise the first supported primary tag from
    ``Accept-Language`` (in header order, q-values ignored); otherwise the default.
    """
    allowed = [s.lower() for s in supported]
    if explicit and explicit.strip().lower() in allowed:
        return explicit.strip().lower()
    for part in (accept_language or "").split(","):
        tag = part.split(";", 1)[0].strip().lower()
        primary = tag.split("-", 1)[0]
        if primary in allowed:
            return primary
    return default


__all__ = ["MESSAGES", "DEFAULT_LANGUAGE", "translate", "negotiate_language"]
