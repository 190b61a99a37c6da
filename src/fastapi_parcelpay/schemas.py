"""Request and response bodies.

Wire names follow the existing client contract (``insertedId``,
``transactionId``, ``amountinCents``); Python attributes are snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CreateParcelRequest(BaseModel):
    """Delivery details are opaque; any extra field is kept."""

    model_config = ConfigDict(extra="allow")

    created_by: EmailStr | None = None


class UserLoginRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: EmailStr


class TrackingEventRequest(BaseModel):
    tracking_id: str = ""
    parcel_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    message: str = ""
    updated_by: str = ""


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount_in_cents: int = Field(alias="amountinCents", ge=0)


class PaymentCompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_method: str = Field(alias="paymentMethod", default="card")
    transaction_id: str = Field(alias="transactionId", min_length=1)
    parcel_id: str = Field(alias="parcelId", min_length=1)
    email: EmailStr
    amount: int = Field(ge=0)


class CreatedResponse(BaseModel):
    message: str
    inserted_id: str = Field(serialization_alias="insertedId")


class DeletedResponse(BaseModel):
    deleted_count: int = Field(serialization_alias="deletedCount")


class TrackingCreatedResponse(BaseModel):
    success: bool = True
    inserted_id: str = Field(serialization_alias="insertedId")


class UserLoginResponse(BaseModel):
    message: str
    inserted: bool
    inserted_id: str | None = Field(
        default=None, serialization_alias="insertedId"
    )


class PaymentIntentResponse(BaseModel):
    client_secret: str = Field(serialization_alias="clientSecret")
