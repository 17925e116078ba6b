"""Request bodies accepted by the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AnalyzeIn(BaseModel):
    resources: Optional[List[Dict[str, Any]]] = None  # defaults to the stored resources
    provider: Optional[str] = None
    model: Optional[str] = None
    customId: Optional[str] = None


class ChatIn(BaseModel):
    question: str = Field(min_length=1)


class ModelsIn(BaseModel):
    provider: str = "custom"
    customId: Optional[str] = None
    force: bool = False


class BulkImportIn(BaseModel):
    resources: List[Dict[str, Any]]
    mode: str = Field(default="merge", pattern="^(merge|overwrite)$")


class TelegramTestIn(BaseModel):
    chatId: str
    message: Optional[str] = None


class EmailTestIn(BaseModel):
    to: str
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None


class WebhookTestIn(BaseModel):
    url: Optional[str] = None  # defaults to the saved webhook URL
