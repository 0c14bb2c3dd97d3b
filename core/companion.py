"""
core/companion.py -- Installation and activation state of the redemption server.

The companion server is the HTTP side of magic-login (api/main.py). Issuing a
link that nothing will answer is pointless, so the CLI refuses to mint or
rotate until the companion is installed and switched on. The redemption route
checks the same flag on every request and answers 404 while it is off.

State lives in the shared option store so the CLI process and the server
processes agree without any extra coordination:
  magic_login_server_installed -- version string written by install()
  magic_login_server_active    -- "on" or "off"
"""

from __future__ import annotations

import logging

from core.errors import CapabilityNotActive, InvalidToggleValue
from core.options import OptionStore

logger = logging.getLogger("magiclogin.companion")

INSTALLED_OPTION = "magic_login_server_installed"
ACTIVE_OPTION = "magic_login_server_active"

COMPANION_VERSION = "1.0.0"

_TOGGLE_VALUES = ("on", "off")


class CompanionServer:
    def __init__(self, options: OptionStore) -> None:
        self._options = options

    def is_installed(self) -> bool:
        return self._options.get(INSTALLED_OPTION) is not None

    def is_active(self) -> bool:
        return self.is_installed() and self._options.get(ACTIVE_OPTION) == "on"

    def install(self, version: str = COMPANION_VERSION) -> None:
        """Install or refresh the companion. Overwrites any earlier version marker."""
        logger.debug("Installing/refreshing companion server %s", version)
        self._options.update(INSTALLED_OPTION, version)

    def toggle(self, state: str | None = None) -> str:
        """Switch the companion on or off and return the new state.

        With no state, flips the current one. Raises InvalidToggleValue for
        anything but "on"/"off", before touching the store.
        """
        if state and state not in _TOGGLE_VALUES:
            raise InvalidToggleValue('Invalid toggle value. Possible options are "on" and "off".')
        if not state:
            state = "off" if self.is_active() else "on"
        if state == "on" and not self.is_installed():
            raise CapabilityNotActive(
                "The companion server is not installed. Run `magic-login install --activate` and try again."
            )
        logger.debug("Toggling companion server: %s", state)
        self._options.update(ACTIVE_OPTION, state)
        return state

    def require_active(self) -> None:
        """Stop with operator instructions unless the companion is installed and active."""
        if not self.is_active():
            raise CapabilityNotActive(
                "This command requires the companion server to be installed and active. "
                "Run `magic-login install --activate` and try again."
            )
