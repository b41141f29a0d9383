import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import autoctl.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Attribute access to every pg_autoctl setting.

    Values start from `autoctl.settings`, which already folds in the environment
    and the `.env` file. A JSON object in `overrides.json` may then tune the keys
    listed in `MODIFIABLE_SETTINGS` (supervisor timings, mostly). The supervisor
    calls `reload()` on SIGHUP, so edits to that file apply without a restart.
    """

    def __init__(self, overrides_path: Path = default_settings.OVERRIDES_JSON_PATH) -> None:
        self.OVERRIDES_JSON_PATH: Path = Path(overrides_path)
        self.reload()

    def reload(self) -> Dict[str, Any]:
        """
        Resets every setting to its default, then applies `overrides.json` again.

        :return: The overrides that were applied, after type coercion.
        """
        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))

        applied: Dict[str, Any] = {}
        for key, value in self._read_overrides().items():
            coerced = self._coerce(key, value)
            if coerced is None:
                continue
            setattr(self, key, coerced)
            applied[key] = coerced

        if applied:
            log.debug(f"Applied overrides from {self.OVERRIDES_JSON_PATH}: {applied}")
        return applied

    def _read_overrides(self) -> Dict[str, Any]:
        if not self.OVERRIDES_JSON_PATH.is_file():
            return {}

        try:
            overrides = json.loads(self.OVERRIDES_JSON_PATH.read_text())
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return {}

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return {}
        return overrides

    def _coerce(self, key: str, value: Any) -> Optional[Any]:
        """Converts an override to the type of its default; None when it must be ignored."""
        if key not in self.MODIFIABLE_SETTINGS:
            log.warning(f"Setting '{key}' cannot be changed from {self.OVERRIDES_JSON_PATH}. Ignoring.")
            return None

        default = getattr(default_settings, key)
        try:
            return type(default)(value)
        except (ValueError, TypeError) as e:
            log.error(f"Could not convert override '{key}' = {value!r} to {type(default).__name__}: {e}")
            return None


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
