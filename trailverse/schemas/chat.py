from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Dict, Any
from pydantic import validator

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str

class ChatMetadata(BaseModel):
    park_code: Optional[str] = Field(None, alias="parkCode")
    park_name: Optional[str] = Field(None, alias="parkName")
    lat: Optional[float] = None
    lon: Optional[float] = None
    form_data: Optional[Dict[str, Any]] = Field(None, alias="formData")

    class Config:
        populate_by_name = True

class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    provider: str = "claude"
    model: Optional[str] = None
    temperature: float = Field(0.4, ge=0, le=2)
    top_p: float = Field(0.9, ge=0, le=1)
    max_tokens: int = Field(2000, alias="maxTokens", gt=0)
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    metadata: ChatMetadata = Field(default_factory=ChatMetadata)

    class Config:
        populate_by_name = True

    @validator("metadata", pre=True)
    def none_metadata(cls, v):
        return v if v is not None else {}

    @property
    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""
