"""
Prompt templates for structured extraction.

The system prompt always states the exact JSON schema; only the rules
about the summary language change per locale. Supported locales: nl
(default), ar, en. Unknown codes fall back to nl.
"""

from __future__ import annotations

from typing import Final

TRUNCATION_MARKER: Final[str] = "\n\n[...TRUNCATED...]"

SCHEMA_BLOCK: Final[str] = """\
{
  "docType": "BELASTING|BOETE|VERZEKERING|ABONNEMENT|OVERIG",
  "sender": "string|null",
  "summary": "string",
  "actions": [{"title":"string","description":"string","deadline":"YYYY-MM-DD|null"}],
  "amountEUR": number|null,
  "deadline": "YYYY-MM-DD|null",
  "confidence": number
}"""

_LANGUAGE_NAMES: Final[dict[str, str]] = {
    "nl": "simpele Nederlandse taal",
    "ar": "eenvoudig Arabisch (العربية)",
    "en": "simpel Engels",
}

_SYSTEM_TEMPLATE: Final[str] = """\
Je bent een assistent die Nederlandse administratieve documenten leest.
Je output is ALLEEN geldige JSON (geen markdown, geen tekst).

Je moet exact dit schema aanhouden:
{schema}

Regels:
- Schrijf summary in {language_name}, maximaal 5 regels.
- Schrijf de titels en beschrijvingen van acties ook in {language_name}.
- deadlines: als je geen datum ziet, gebruik null.
- amountEUR: alleen het bedrag als getal, zonder valutateken.
- confidence: 0 t/m 100 (integer of decimal is ok).
"""

_USER_TEMPLATE: Final[str] = (
    "Lees onderstaande tekst en geef JSON volgens het schema.\n\n"
    'TEKST:\n"""{text}"""'
)

REPAIR_SYSTEM_PROMPT: Final[str] = (
    "Je taak: maak van de input geldige JSON die exact aan dit schema voldoet. "
    "Output alleen JSON.\n\n" + SCHEMA_BLOCK
)

_REPAIR_USER_TEMPLATE: Final[str] = (
    "De vorige output was ongeldig.\n"
    "FOUT:\n{error}\n\n"
    "ONGELDIGE OUTPUT:\n{invalid_output}\n\n"
    "Geef nu alleen geldige JSON volgens het schema (geen extra tekst)."
)

# Substituted for empty OCR/PDF text so the model always has input
NO_TEXT_PLACEHOLDERS: Final[dict[str, str]] = {
    "nl": "(geen tekst gevonden)",
    "ar": "(لم يتم العثور على نص)",
    "en": "(no text found)",
}


def normalize_language(language: str | None) -> str:
    code = (language or "nl").strip().lower()
    return code if code in _LANGUAGE_NAMES else "nl"


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def no_text_placeholder(language: str | None) -> str:
    return NO_TEXT_PLACEHOLDERS[normalize_language(language)]


def build_system_prompt(language: str | None) -> str:
    return _SYSTEM_TEMPLATE.format(
        schema=SCHEMA_BLOCK,
        language_name=_LANGUAGE_NAMES[normalize_language(language)],
    )


def build_user_prompt(text: str) -> str:
    return _USER_TEMPLATE.format(text=text)


def build_repair_prompt(error: str, invalid_output: str) -> str:
    return _REPAIR_USER_TEMPLATE.format(error=error, invalid_output=invalid_output)
