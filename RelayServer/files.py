# RelayServer/files.py
import mimetypes
from typing import List, Tuple
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from core.context import RelayContext
from core.errors import RelayError

from .dependencies import get_relay, http_error, require_agent
from .logutil import get_logger
from .schemas import FileListUpload, RelayStatus, UploadAck

logger = get_logger("RelayServer.files", file_basename="server")

router = APIRouter()

_VIEW_PREFIX = "/file/view/"

def _view_target(request: Request, dir: str, filename: str) -> Tuple[str, str]:
    """
    Split the still-encoded path at its last slash, so an encoded "/" inside
    the filename stays part of the filename.
    """
    raw = request.scope.get("raw_path")
    if not raw:
        return dir, filename
    raw_path = raw.decode("latin-1").split("?", 1)[0]
    at = raw_path.find(_VIEW_PREFIX)
    if at < 0:
        return dir, filename
    raw_dir, sep, raw_name = raw_path[at + len(_VIEW_PREFIX):].rpartition("/")
    if not sep or not raw_name:
        return dir, filename
    return unquote(raw_dir), unquote(raw_name)

def _attachment(name: str) -> str:
    quoted = quote(name)
    if quoted != name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{name}"'

@router.get("/status", response_model=RelayStatus)
def relay_status(relay: RelayContext = Depends(get_relay)):
    return RelayStatus(
        agent_connected=relay.channel.is_open,
        connected_at=relay.channel.connected_at,
        pending_fetches=relay.correlator.pending_count,
        indexed_files=len(relay.uploaded.files),
    )

@router.post("/upload-files", response_model=UploadAck)
async def upload_files(request: Request, relay: RelayContext = Depends(get_relay)):
    try:
        body = FileListUpload.model_validate(await request.json())
    except (ValidationError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid file list")
    return UploadAck(count=relay.uploaded.replace(body.files))

@router.get("/files/{dir:path}", response_model=List[str])
async def list_dir(dir: str, relay: RelayContext = Depends(require_agent)):
    try:
        return await relay.listings.request_listing(dir)
    except RelayError as e:
        logger.info("http.files.failed", extra={"dir": dir, "status": e.status_code})
        raise http_error(e)

@router.get("/file/view/{dir:path}/{filename}")
async def view_file(request: Request, dir: str, filename: str, relay: RelayContext = Depends(require_agent)):
    dir, filename = _view_target(request, dir, filename)
    try:
        location = await relay.correlator.fetch_file(dir, filename)
    except RelayError as e:
        logger.info("http.view.failed", extra={"dir": dir, "entry": filename, "status": e.status_code})
        raise http_error(e)

    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    # consume() deletes the staged file once the body is out, even if sending failed
    return StreamingResponse(relay.store.consume(location), media_type=media_type)

@router.get("/download-all/{dir:path}")
async def download_all(dir: str, relay: RelayContext = Depends(require_agent)):
    try:
        stream = relay.archives.open(dir)
    except RelayError as e:
        logger.info("http.download_all.failed", extra={"dir": dir, "status": e.status_code})
        raise http_error(e)

    name = relay.archives.archive_name(dir)
    logger.info("http.download_all.begin", extra={"dir": dir, "count": len(stream.files), "archive": name})
    return StreamingResponse(stream, media_type="application/zip",
                             headers={"Content-Disposition": _attachment(name)})
