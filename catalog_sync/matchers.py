import re
import uuid
from typing import Dict, Optional, Pattern, Tuple

from catalog_sync.errors import ConfigError


class Matcher:
    """
    Protects interpolation placeholders from a translation backend.

    Each placeholder matched by ``pattern`` is swapped for an opaque token
    before the text is sent out and swapped back afterwards.
    """

    def __init__(self, name: str, pattern: Optional[Pattern[str]]):
        self.name = name
        self.pattern = pattern

    def protect(self, text: str) -> Tuple[str, Dict[str, str]]:
        """
        Extract and replace placeholders in the text with unique tokens.

        Args:
            text (str): The text to process.

        Returns:
            Tuple[str, Dict[str, str]]: The processed text and placeholder mapping.
        """
        if not isinstance(text, str):
            raise ValueError("Input text must be a string.")
        placeholder_mapping: Dict[str, str] = {}
        if self.pattern is None:
            return text, placeholder_mapping

        def replace_placeholder(match):
            placeholder_token = f"__PH_{uuid.uuid4().hex}__"
            placeholder_mapping[placeholder_token] = match.group(0)
            return placeholder_token

        return self.pattern.sub(replace_placeholder, text), placeholder_mapping

    @staticmethod
    def restore(text: str, placeholder_mapping: Dict[str, str]) -> str:
        for token, placeholder in placeholder_mapping.items():
            text = text.replace(token, placeholder)
        return text


MATCHER_REGISTRY: Dict[str, Matcher] = {
    "none": Matcher("none", None),
    # Simple arguments: {name}, {0}, {n, number}, {d, date, short}. Plural and
    # select messages are left as text so their branches get translated.
    "icu": Matcher("icu", re.compile(
        r'\{\s*[A-Za-z0-9_]+\s*(?:,\s*(?:number|date|time|spellout|ordinal|duration)\s*(?:,[^{}]*)?)?\}'
    )),
    # {{name}}
    "i18next": Matcher("i18next", re.compile(r'\{\{[^{}]+\}\}')),
    # %s, %d, %1$s, %(name)s, %%
    "sprintf": Matcher("sprintf", re.compile(r'%(?:\([A-Za-z0-9_]+\)|\d+\$)?[-+ 0#]*\d*(?:\.\d+)?[sdifFeEgGxXoc%@]')),
}


def get_matcher(name: str) -> Matcher:
    try:
        return MATCHER_REGISTRY[name]
    except KeyError:
        raise ConfigError(
            f"Unknown matcher '{name}'. Available matchers: {', '.join(MATCHER_REGISTRY)}"
        ) from None
