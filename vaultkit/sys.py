"""Secret engine mount administration (``sys/mounts``)."""

import logging
from typing import Any

from vaultkit.engines.base import join_path
from vaultkit.exceptions import PermanentError
from vaultkit.requester import Requester

logger = logging.getLogger(__name__)

MOUNTS_PATH = "sys/mounts"


class MountAdmin:
    """
    List, enable, disable and tune secret engine mounts.

    Requires a token with sudo-level policy on ``sys/mounts``.
    """

    def __init__(self, requester: Requester) -> None:
        self._requester = requester

    def list(self) -> dict[str, dict[str, Any]]:
        """
        Return mounted engines keyed by path, without the trailing slash.

        Example:
            >>> admin.list()["secret"]["type"]
            'kv'
        """
        payload = self._requester.get(MOUNTS_PATH) or {}
        # Newer servers nest under "data"; older ones return mounts at top level.
        mounts = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        result: dict[str, dict[str, Any]] = {}
        for path, info in mounts.items():
            if isinstance(info, dict) and "type" in info:
                result[path.rstrip("/")] = info
        return result

    def enable(
        self,
        path: str,
        engine_type: str,
        *,
        description: str | None = None,
        config: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        if not engine_type:
            raise PermanentError("Engine type is required", path=path)
        body: dict[str, Any] = {"type": engine_type}
        if description is not None:
            body["description"] = description
        if config:
            body["config"] = config
        if options:
            body["options"] = options
        self._requester.post(join_path(MOUNTS_PATH, path), body)
        logger.info("Secret engine enabled", extra={"mount_path": path, "engine_type": engine_type})

    def disable(self, path: str) -> None:
        """Unmount an engine; every secret and lease under it is revoked by the backend."""
        self._requester.delete(join_path(MOUNTS_PATH, path))
        logger.warning("Secret engine disabled", extra={"mount_path": path})

    def read_tune(self, path: str) -> dict[str, Any]:
        api_path = join_path(MOUNTS_PATH, path, "tune")
        payload = self._requester.get(api_path) or {}
        data = payload.get("data")
        return dict(data if isinstance(data, dict) else payload)

    def tune(self, path: str, **config: Any) -> None:
        """Update mount config, e.g. ``default_lease_ttl="1h"``, ``max_lease_ttl="24h"``."""
        if not config:
            raise PermanentError("No tune settings given", path=path)
        self._requester.post(join_path(MOUNTS_PATH, path, "tune"), config)
        logger.info("Secret engine tuned", extra={"mount_path": path, "settings": sorted(config)})
