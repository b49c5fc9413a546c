from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class AccessCodeRequest(BaseModel):
    email: str | None = None
    amount: Decimal | None = None  # major currency units (Naira)


class AccessCodeData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_code: str = Field(serialization_alias="accessCode")
    authorization_url: str = Field(serialization_alias="authorizationUrl")


class AccessCodeResponse(BaseModel):
    status: bool = True
    message: str
    data: AccessCodeData


class PaymentErrorResponse(BaseModel):
    status: bool = False
    message: str
    error: str | None = None
