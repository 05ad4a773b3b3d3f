"""Password resolution for encrypted containers.

Decoders only ever see a callable ``alias -> secret``. The empty alias asks
for the container (store) password; any other alias names a key store entry.
"""

import logging
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

Resolver = Callable[[str], str]


class PasswordResolver:
    """Resolve secrets from an alias mapping, a default, then a prompt.

    Each alias is resolved at most once; later requests for the same alias
    reuse the first answer.
    """

    def __init__(self, default: Optional[str] = None,
                 entries: Optional[Mapping[str, str]] = None,
                 prompt: Optional[Resolver] = None):
        self.default = default
        self.entries = dict(entries or {})
        self.prompt = prompt
        self._resolved: Dict[str, str] = {}

    def __call__(self, alias: str) -> str:
        if alias in self._resolved:
            return self._resolved[alias]

        if alias in self.entries:
            secret = self.entries[alias]
            source = 'entry mapping'
        elif self.default is not None:
            secret = self.default
            source = 'default'
        elif self.prompt is not None:
            secret = self.prompt(alias)
            source = 'prompt'
        else:
            secret = ''
            source = 'empty'

        logger.debug("password for %s taken from %s",
                     f"entry [{alias}]" if alias else 'container', source)
        self._resolved[alias] = secret
        return secret

    def __repr__(self):
        # never show secrets
        return f"PasswordResolver(aliases={sorted(self.entries)!r}, default={'set' if self.default is not None else 'unset'})"


def constant(secret: str) -> Resolver:
    """Resolver returning ``secret`` for every alias"""
    return lambda alias: secret


def no_password(alias: str) -> str:
    return ''


def parse_entry_passwords(values) -> Dict[str, str]:
    """Parse ``ALIAS=SECRET`` strings into a mapping"""
    entries = {}
    for value in values or ():
        alias, sep, secret = value.partition('=')
        if not sep or not alias:
            raise ValueError("entry passwords must look like ALIAS=SECRET")
        entries[alias] = secret
    return entries
