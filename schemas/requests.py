# User value: This file describes what users hand to the orchestrator: mod files and processing choices.
import mimetypes
import os
from typing import Optional

from pydantic import BaseModel, Field


class ModFile(BaseModel):
    # User value: the raw dropped file; its bytes go to the upload call and nowhere else.
    file_name: str
    content: bytes = Field(repr=False)
    content_type: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return os.path.splitext(str(self.file_name or "").strip().lower())[1]

    def guessed_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.file_name or "")
        return guessed or "application/octet-stream"

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "ModFile":
        with open(path, "rb") as fh:
            content = fh.read()
        return cls(file_name=os.path.basename(path), content=content, content_type=content_type)


class ProcessRequest(BaseModel):
    preset_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    ai_config: str = "default"

    def to_payload(self) -> dict:
        # "model_config" is reserved on pydantic models, so the wire name is set here.
        return {
            "preset_id": self.preset_id,
            "prompt": self.prompt,
            "model_config": self.ai_config,
        }


class ProcessJobBody(BaseModel):
    # User value: the preset and free-text instructions the user picked in the UI.
    preset_id: Optional[str] = None
    custom_prompt: Optional[str] = None


class SessionTokenBody(BaseModel):
    token: str = Field(..., min_length=1)
