"""
Internationalization (i18n) module for the domain watch system.

Provides translations for all user-facing messages (alert texts, challenge
prompts, CLI output) in German (de) and English (en).
"""

from typing import Optional


# Supported languages
SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "en"


# Translation dictionary with all messages
# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Alert messages sent to the recipient
    "alert.expired": {
        "de": "🚨 ACHTUNG! {domain} scheint abgelaufen zu sein! Sofort prüfen!",
        "en": "🚨 ATTENTION! {domain} appears to have expired! Check immediately!",
    },
    "alert.warning": {
        "de": "⚠️ Warnung: Die Domain {domain} läuft in {days} Tagen ab!",
        "en": "⚠️ Warning: Domain {domain} will expire in {days} days!",
    },
    "alert.info": {
        "de": "ℹ️ Die Domain {domain} läuft in {days} Tagen ab.",
        "en": "ℹ️ Domain {domain} will expire in {days} days.",
    },
    "alert.lookup_error": {
        "de": "Whois-Bot-Fehler: {error}",
        "en": "Whois Bot Error: {error}",
    },

    # Authentication challenge shown on the terminal
    "challenge.header": {
        "de": "Anmeldung erforderlich ({attempt}/{max_attempts}): Code in WhatsApp unter 'Verknüpfte Geräte' scannen",
        "en": "Login required ({attempt}/{max_attempts}): scan this code in WhatsApp under 'Linked devices'",
    },

    # CLI messages
    "cli.run.starting": {
        "de": "Domain-Überwachung für {domain} gestartet",
        "en": "Domain watch started for {domain}",
    },
    "cli.run.stopped": {
        "de": "Domain-Überwachung beendet",
        "en": "Domain watch stopped",
    },
    "cli.check.result": {
        "de": "{domain} läuft ab am {expiry} (in {days} Tagen, Quelle: {source})",
        "en": "{domain} expires on {expiry} (in {days} days, source: {source})",
    },
    "cli.check.expired": {
        "de": "{domain} ist seit {expiry} abgelaufen (Quelle: {source})",
        "en": "{domain} expired on {expiry} (source: {source})",
    },
    "cli.check.failed": {
        "de": "Ablaufdatum konnte nicht ermittelt werden: {error}",
        "en": "Could not determine expiration date: {error}",
    },
    "cli.check.invalid_domain": {
        "de": "Ungültige Domain: {error}",
        "en": "Invalid domain: {error}",
    },
    "cli.config.error": {
        "de": "Konfigurationsfehler: {error}",
        "en": "Configuration error: {error}",
    },
    "cli.interrupted": {
        "de": "Abgebrochen",
        "en": "Interrupted",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'alert.warning')
        language: Language code ('de' or 'en'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.
        If the language is not found, falls back to DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('alert.info', 'en', domain='example.com', days=90)
        'ℹ️ Domain example.com will expire in 90 days.'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language)
    if message is None:
        message = translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Missing argument: return the unformatted template
            pass

    return message


def get_all_message_keys() -> set[str]:
    """Get all available message keys."""
    return set(TRANSLATIONS.keys())


def has_translation(key: str, language: str) -> bool:
    """Check if a translation exists for a key and language."""
    translations = TRANSLATIONS.get(key)
    if translations is None:
        return False
    return language in translations


def validate_translations() -> dict[str, set[str]]:
    """
    Find keys without a translation, per supported language.

    Returns:
        Mapping of language code to the set of keys missing for it
    """
    return {
        language: {key for key in TRANSLATIONS if not has_translation(key, language)}
        for language in SUPPORTED_LANGUAGES
    }
