"""Plain-text and HTML bodies for outbound messages."""

from __future__ import annotations

from html import escape


def render_verification_code(code: str, *, ttl_minutes: int) -> tuple[str, str]:
    """Return (text, html) bodies carrying a one-time code."""

    text = (
        "Bonjour,\n\n"
        f"Votre code de vérification est : {code}\n\n"
        f"Ce code expire dans {ttl_minutes} minutes et ne peut être utilisé qu'une seule fois.\n"
        "Si vous n'êtes pas à l'origine de cette demande, ignorez ce message.\n"
    )
    html = (
        "<html><body style=\"font-family: Arial, sans-serif;\">"
        "<p>Bonjour,</p>"
        "<p>Votre code de vérification est :</p>"
        f"<p style=\"font-size: 28px; font-weight: bold; letter-spacing: 6px;\">{escape(code)}</p>"
        f"<p>Ce code expire dans {ttl_minutes} minutes et ne peut être utilisé qu'une seule fois.</p>"
        "<p>Si vous n'êtes pas à l'origine de cette demande, ignorez ce message.</p>"
        "</body></html>"
    )
    return text, html


def render_submission_confirmation(first_name: str, last_name: str) -> tuple[str, str]:
    """Return (text, html) bodies confirming a recorded submission."""

    name = f"{first_name} {last_name}".strip()
    text = (
        f"Bonjour {name},\n\n"
        "Merci d'avoir participé à notre enquête de satisfaction. "
        "Vos réponses ont bien été enregistrées.\n"
    )
    html = (
        "<html><body style=\"font-family: Arial, sans-serif;\">"
        f"<p>Bonjour {escape(name)},</p>"
        "<p>Merci d'avoir participé à notre enquête de satisfaction. "
        "Vos réponses ont bien été enregistrées.</p>"
        "</body></html>"
    )
    return text, html
