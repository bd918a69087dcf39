"""Label and message tables for the two supported invoice languages."""
from __future__ import annotations

LABELS: dict[str, dict[str, str]] = {
    "ES": {
        "invoice": "Factura",
        "date": "Fecha",
        "dueDate": "Vencimiento",
        "number": "Nº Factura",
        "issuer": "Emisor",
        "recipient": "Receptor",
        "description": "Descripción",
        "unitCost": "Precio/Unid.",
        "quantity": "Unidad",
        "amount": "Total",
        "subtotal": "SubTotal",
        "vat": "IVA",
        "irpf": "IRPF",
        "total": "Total Factura",
        "paid": "PAGADO",
        "pending": "PENDIENTE",
        "status": "ESTADO",
    },
    "EN": {
        "invoice": "Invoice",
        "date": "Date of Issue",
        "dueDate": "Due Date",
        "number": "Invoice Number",
        "issuer": "Payable to",
        "recipient": "Billed to",
        "description": "Description",
        "unitCost": "Unit Cost",
        "quantity": "Quantity",
        "amount": "Amount",
        "subtotal": "SubTotal",
        "vat": "VAT",
        "irpf": "IRPF/Withholding",
        "total": "Invoice Total",
        "paid": "PAID",
        "pending": "PENDING",
        "status": "STATUS",
    },
}

AUTH_MESSAGES: dict[str, dict[str, str]] = {
    "ES": {
        "user-not-found": "No existe ninguna cuenta con ese email.",
        "wrong-password": "Contraseña incorrecta. Inténtalo de nuevo.",
        "too-many-requests": "Demasiados intentos fallidos. Espera unos minutos.",
        "email-already-in-use": "Ya existe una cuenta con ese email.",
        "invalid-email": "El email no es válido.",
        "weak-password": "La contraseña es demasiado corta.",
        "user-disabled": "La cuenta está desactivada.",
        "invalid-token": "La sesión no es válida. Vuelve a iniciar sesión.",
        "expired-token": "La sesión ha caducado. Vuelve a iniciar sesión.",
    },
    "EN": {
        "user-not-found": "There is no account for that email.",
        "wrong-password": "Wrong password. Please try again.",
        "too-many-requests": "Too many failed attempts. Please wait a few minutes.",
        "email-already-in-use": "An account with that email already exists.",
        "invalid-email": "The email address is not valid.",
        "weak-password": "The password is too short.",
        "user-disabled": "This account has been disabled.",
        "invalid-token": "Your session is not valid. Please sign in again.",
        "expired-token": "Your session has expired. Please sign in again.",
    },
}


def normalise_language(value: str | None) -> str:
    """Map an Accept-Language style value onto ES or EN (ES by default)."""

    if not value:
        return "ES"
    primary = value.split(",", 1)[0].split("-", 1)[0].strip().upper()
    return primary if primary in LABELS else "ES"


def labels(language: str) -> dict[str, str]:
    return LABELS.get(language, LABELS["ES"])


def auth_message(code: str, language: str = "ES") -> str:
    messages = AUTH_MESSAGES.get(language, AUTH_MESSAGES["ES"])
    return messages.get(code, code)
