from __future__ import annotations

from kfaas.clients.base import BaseHTTPClient, PermanentHTTPError

CDMI_VERSION = "1.1.1"
CDMI_CONTAINER = "application/cdmi-container"


class CDMIBadRequestError(Exception):
    """The CDMI server rejected the request, typically because the container exists."""


class CDMIClient(BaseHTTPClient):
    """Minimal CDMI client for Onedata's Oneprovider."""

    def __init__(
        self,
        oneprovider_host: str,
        token: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
    ) -> None:
        base_url = oneprovider_host
        if not base_url.startswith(("http://", "https://")):
            base_url = f"https://{base_url}"
        super().__init__(
            f"{base_url.rstrip('/')}/cdmi",
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._token = token

    def _headers(self) -> dict[str, str]:
        return {
            "X-Auth-Token": self._token,
            "X-CDMI-Specification-Version": CDMI_VERSION,
            "Content-Type": CDMI_CONTAINER,
            "Accept": CDMI_CONTAINER,
        }

    async def _put_container(self, path: str) -> None:
        try:
            await self.put(f"/{path.strip('/')}/", json={})
        except PermanentHTTPError as exc:
            if exc.status_code == 400:
                raise CDMIBadRequestError(str(exc)) from exc
            raise

    async def create_container(self, path: str, create_parents: bool = False) -> None:
        """Create the container at ``path`` (``<space>/<dir>/...``).

        With ``create_parents`` every ancestor below the space is created first;
        ancestors that already exist are skipped.
        """
        parts = [part for part in path.strip("/").split("/") if part]
        if create_parents:
            for depth in range(2, len(parts)):
                try:
                    await self._put_container("/".join(parts[:depth]))
                except CDMIBadRequestError:
                    continue
        await self._put_container("/".join(parts))
