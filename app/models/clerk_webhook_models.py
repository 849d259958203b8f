from pydantic import BaseModel
from typing import Dict, Any


class ClerkWebhookEvent(BaseModel):
    data: Dict[str, Any]
    object: str
    type: str
