# dinoscan/schemas/analysis.py
from pydantic import BaseModel, Field
from typing import List, Optional, Any, Dict, Literal


RarityLabel = Literal["普通", "稀有", "传说"]
Rarity = RarityLabel


# ---------- Gateway request ----------
class AnalyzeRequest(BaseModel):
    mode: Optional[str] = None
    imageBase64: Optional[str] = None
    mimeType: Optional[str] = None
    prompt: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


# ---------- Gateway responses ----------
class AnalysisResult(BaseModel):
    Name: str = "未知标本"
    Era: str = "待定"
    Classification: str = "待定"
    Length: str = "待定"
    Rarity: RarityLabel = "普通"
    Confidence: float = Field(default=70, ge=0, le=100)
    Note: str = "标本特征正在进一步比对中。"


class Insight(BaseModel):
    title: str
    content: str


# ---------- Upstream chat / completions ----------
class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    content: Any


class ChatRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = 0.2
    max_tokens: Optional[int] = 1200
    stream: Optional[bool] = False


# ---------- Capture client ----------
class Coordinates(BaseModel):
    lat: float
    lng: float


class FossilRecord(BaseModel):
    id: str
    name: str
    era: str
    classification: str
    length: str
    rarity: Rarity
    matchConfidence: float
    description: str
    note: str
    imageUrl: str
    timestamp: str
    location: Optional[Coordinates] = None
