from pydantic import BaseModel
from typing import List, Optional

class FileListUpload(BaseModel):
    files: List[str]

class UploadAck(BaseModel):
    status: str = "ok"
    count: int

class RelayStatus(BaseModel):
    agent_connected: bool
    connected_at: Optional[float] = None
    pending_fetches: int = 0
    indexed_files: int = 0
