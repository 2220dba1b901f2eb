"""Microsoft Graph workbook reader.

Resolves a OneDrive/SharePoint sharing link to its drive item and reads the used
range of each worksheet into the raw workbook payload consumed by the transformer:

    {"fileName", "fileSize", "worksheets": [{"name", "range", "rowCount",
     "columnCount", "values"} | {"name", "error"}]}
"""

import base64
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from vocab_tracker.core.config import settings

logger = logging.getLogger(__name__)


class GraphError(RuntimeError):
    """A Microsoft Graph request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def encode_sharing_url(sharing_url: str) -> str:
    """Encode a sharing link as a Graph share id ("u!" + unpadded base64url)."""
    encoded = base64.b64encode(sharing_url.encode("utf-8")).decode("ascii")
    return "u!" + encoded.rstrip("=").replace("/", "_").replace("+", "-")


class GraphClient:
    def __init__(self, token: str, http_client: Optional[httpx.AsyncClient] = None):
        self._token = token
        self._http = http_client or httpx.AsyncClient(
            base_url=settings.graph_base_url,
            timeout=settings.graph_timeout_seconds,
        )

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str) -> dict[str, Any]:
        try:
            response = await self._http.get(
                path, headers={"Authorization": f"Bearer {self._token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.warning(f"Graph request {path} failed ({exc.response.status_code}): {message}")
            raise GraphError(message, exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            logger.error(f"Unable to reach Microsoft Graph: {exc}")
            raise GraphError(f"Unable to reach Microsoft Graph: {exc}") from exc
        return response.json()

    async def get_user(self) -> dict[str, Any]:
        return await self._get("/me?$select=displayName,mail,userPrincipalName")

    async def _resolve_item(self, sharing_url: str) -> tuple[dict[str, Any], str]:
        """Drive item metadata for a sharing link and its workbook API base path."""
        item = await self._get(f"/shares/{encode_sharing_url(sharing_url)}/driveItem")
        drive_id = item["parentReference"]["driveId"]
        return item, f"/drives/{drive_id}/items/{item['id']}/workbook"

    async def list_worksheets(self, sharing_url: str) -> dict[str, Any]:
        """File name and worksheet list (without cell values)."""
        item, workbook_path = await self._resolve_item(sharing_url)
        worksheets = await self._get(f"{workbook_path}/worksheets")
        return {
            "fileName": item.get("name"),
            "worksheets": [
                {
                    "id": ws.get("id"),
                    "name": ws.get("name"),
                    "position": ws.get("position"),
                    "visibility": ws.get("visibility"),
                }
                for ws in worksheets.get("value", [])
            ],
        }

    async def read_workbook(self, sharing_url: str, sheet_name: str = "") -> dict[str, Any]:
        """Read used-range values for every worksheet, or only ``sheet_name``.

        A failure reading one worksheet is recorded on that worksheet as ``error``.
        """
        item, workbook_path = await self._resolve_item(sharing_url)
        worksheets = (await self._get(f"{workbook_path}/worksheets")).get("value", [])

        if sheet_name:
            worksheets = [ws for ws in worksheets if ws.get("name") == sheet_name]
            if not worksheets:
                raise GraphError(f"Worksheet '{sheet_name}' not found", 404)

        result: dict[str, Any] = {
            "fileName": item.get("name"),
            "fileSize": item.get("size"),
            "worksheets": [],
        }
        for ws in worksheets:
            try:
                used = await self._get(
                    f"{workbook_path}/worksheets/{quote(ws['id'], safe='')}/usedRange"
                )
            except GraphError as e:
                logger.warning(f"Could not read worksheet '{ws.get('name')}': {e}")
                result["worksheets"].append({"name": ws.get("name"), "error": str(e)})
                continue
            result["worksheets"].append({
                "name": ws.get("name"),
                "range": used.get("address"),
                "rowCount": used.get("rowCount"),
                "columnCount": used.get("columnCount"),
                "values": used.get("values"),
            })

        logger.info(f"Read {len(result['worksheets'])} worksheet(s) from '{result['fileName']}'")
        return result


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text or f"HTTP {response.status_code}"
