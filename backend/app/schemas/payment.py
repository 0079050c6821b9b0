from typing import Optional

from pydantic import BaseModel


class PurchaseRequest(BaseModel):
    bundle_id: Optional[str] = None
    callback_url: Optional[str] = None
    use_inline: bool = False


class VerifyInlineRequest(BaseModel):
    reference: Optional[str] = None


class WalletLoadRequest(BaseModel):
    amount: Optional[int] = None
