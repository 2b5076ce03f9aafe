# Localized presentation content. Engine results only carry keys; the text
# behind them is injected here.

from typing import Dict, Mapping, Optional

from services.drive_engine.jung import ARCHETYPE_ANNOTATIONS

DEFAULT_LOCALE = "en"


def transfer_advice_key(td: str, sd: str) -> str:
    return f"transfer_advice.{td}.{sd}"


def partner_script_key(drive: str) -> str:
    return f"relationship.scripts.{drive}"


def partner_link_key(block: str, partner_drive: str) -> str:
    return f"relationship.links.{block}.{partner_drive}"


def value_link_key(block: str) -> str:
    return f"relationship.valueLinks.{block}"


def cap_reason_key(partner_drive: str, self_drive: str, basis: str) -> str:
    """e.g. relationship.capReasons.dominance.bySurfaceDominance"""
    prefix = "bySurface" if basis == "surface" else "by"
    return f"relationship.capReasons.{partner_drive.lower()}.{prefix}{self_drive}"


def jung_annotation_key(axis: str, archetype_id: str) -> Optional[str]:
    annotation = ARCHETYPE_ANNOTATIONS.get(axis, {}).get(archetype_id)
    if not annotation:
        return None
    return f"jung.{axis}.{annotation}"


class ContentLookup:
    """
    Key -> string lookup per locale, falling back to the default locale and
    finally to the key itself.
    """

    def __init__(self, content: Mapping[str, Mapping[str, str]], fallback_locale: str = DEFAULT_LOCALE):
        self._content: Dict[str, Dict[str, str]] = {locale: dict(entries) for locale, entries in content.items()}
        self.fallback_locale = fallback_locale

    @property
    def locales(self):
        return sorted(self._content)

    def get(self, key: str, locale: Optional[str] = None) -> Optional[str]:
        for candidate in (locale, self.fallback_locale):
            if candidate is None:
                continue
            text = self._content.get(candidate, {}).get(key)
            if text is not None:
                return text
        return None

    def text(self, key: str, locale: Optional[str] = None, **params) -> str:
        template = self.get(key, locale)
        if template is None:
            return key
        return template.format(**params) if params else template

    def has(self, key: str, locale: Optional[str] = None) -> bool:
        return self.get(key, locale) is not None
