"""
Configuration for the forward secrecy session core.

Defaults match the peer protocol. Both values must agree with the peer:
the initial counter is part of the wire convention and the maximum skip
bounds the work a single incoming counter value can force on us.
"""

import os
from typing import Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field


MAX_COUNTER = 2 ** 64 - 1

# Protocol convention: ratchets start counting at 1
DEFAULT_INITIAL_COUNTER = 1
DEFAULT_MAX_SKIP = 10_000

ENV_MAX_SKIP = "FS_MAX_SKIP"
ENV_INITIAL_COUNTER = "FS_INITIAL_COUNTER"


class ForwardSecrecyConfig(BaseModel):
    """Tunables shared by every ratchet of a session"""
    model_config = ConfigDict(frozen=True)

    max_skip: int = Field(default=DEFAULT_MAX_SKIP, ge=0)
    initial_counter: int = Field(default=DEFAULT_INITIAL_COUNTER, ge=0, le=MAX_COUNTER)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ForwardSecrecyConfig':
        """
        Build a config from environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ

        Returns:
            Config with every unset variable left at its default
        """
        if environ is None:
            environ = os.environ

        values = {}
        if environ.get(ENV_MAX_SKIP):
            values['max_skip'] = environ[ENV_MAX_SKIP]
        if environ.get(ENV_INITIAL_COUNTER):
            values['initial_counter'] = environ[ENV_INITIAL_COUNTER]
        return cls(**values)


DEFAULT_CONFIG = ForwardSecrecyConfig()
