"""
Shared Pydantic schemas used across the application.

Request bodies only check shape and bounds; domain rules (menu item exists,
options valid, cart non-empty...) are enforced by the services so they hold
for every caller, not just HTTP.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

SessionStatusLiteral = Literal["OPEN", "CLOSED", "EXPIRED"]
ParticipantRoleLiteral = Literal["HOST", "GUEST"]
CartActionLiteral = Literal["ADD", "UPDATE", "REMOVE"]
OrderStatusLiteral = Literal["PLACED", "ACCEPTED", "PREPARING", "READY", "SERVED", "CANCELLED"]


class ErrorResponse(BaseModel):
    """Body of every error response."""

    detail: str
    code: str


# =============================================================================
# Session / Join
# =============================================================================


class JoinRequest(BaseModel):
    """Join a table by QR token or short code."""

    qr_token: str | None = Field(default=None, max_length=512)
    short_code: str | None = Field(default=None, max_length=20)
    nickname: str = Field(min_length=Limits.MIN_NICKNAME_LENGTH, max_length=Limits.MAX_NICKNAME_LENGTH)
    device_fingerprint: str | None = Field(default=None, max_length=256)
    language: str = Field(
        default="en",
        min_length=Limits.MIN_LANGUAGE_LENGTH,
        max_length=Limits.MAX_LANGUAGE_LENGTH,
    )

    @model_validator(mode="after")
    def _exactly_one_locator(self) -> "JoinRequest":
        if bool(self.qr_token) == bool(self.short_code):
            raise ValueError("Provide exactly one of qr_token or short_code")
        return self


class ParticipantOutput(BaseModel):
    id: str
    session_id: str
    nickname: str
    role: ParticipantRoleLiteral
    is_active: bool
    avatar_color: str
    language: str
    joined_at: datetime


class SessionOutput(BaseModel):
    id: str
    store_id: str
    table_id: str
    table_label: str | None = None
    status: SessionStatusLiteral
    current_round_no: int
    participants_count: int
    created_at: datetime
    last_activity_at: datetime
    closed_at: datetime | None = None
    participants: list[ParticipantOutput] = []


# =============================================================================
# Cart
# =============================================================================


class SelectedOptionInput(BaseModel):
    group_id: str = Field(min_length=1, max_length=64)
    value_id: str = Field(min_length=1, max_length=64)


class SelectedOptionOutput(BaseModel):
    group_id: str
    value_id: str
    group_name: str
    value_label: str
    price_delta: int


class CartMutationRequest(BaseModel):
    """
    One cart mutation against the version the client last saw.

    ADD: menu_item_id, quantity (default 1), selected_options
    UPDATE: item_id, quantity and/or selected_options (quantity 0 removes)
    REMOVE: item_id
    """

    expected_version: int = Field(ge=0)
    action: CartActionLiteral
    menu_item_id: str | None = Field(default=None, max_length=36)
    item_id: str | None = Field(default=None, max_length=36)
    quantity: int | None = Field(default=None, ge=0, le=Limits.MAX_QUANTITY)
    selected_options: list[SelectedOptionInput] | None = Field(default=None, max_length=20)


class ClearCartRequest(BaseModel):
    expected_version: int = Field(ge=0)


class CartItemOutput(BaseModel):
    id: str
    menu_item_id: str
    menu_name: str
    participant_id: str
    participant_nickname: str
    participant_avatar_color: str
    quantity: int
    unit_price: int
    selected_options: list[SelectedOptionOutput]
    line_total: int


class CartOutput(BaseModel):
    id: str
    session_id: str
    version: int
    items: list[CartItemOutput]
    subtotal: int
    tax: int
    service_charge: int
    grand_total: int
    updated_at: datetime


class JoinResponse(BaseModel):
    session: SessionOutput
    participant: ParticipantOutput
    session_token: str
    cart: CartOutput


# =============================================================================
# Orders
# =============================================================================


class PlaceOrderRequest(BaseModel):
    cart_version: int = Field(ge=0)
    idempotency_key: str = Field(min_length=1, max_length=128)


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatusLiteral


class OrderItemOutput(BaseModel):
    id: str
    menu_item_id: str
    menu_name: str
    participant_id: str
    quantity: int
    unit_price: int
    selected_options: list[SelectedOptionOutput]
    item_total: int
    status: OrderStatusLiteral


class OrderOutput(BaseModel):
    id: str
    store_id: str
    table_id: str
    session_id: str
    round_no: int
    cart_version: int
    status: OrderStatusLiteral
    placed_by_participant_id: str
    items: list[OrderItemOutput]
    subtotal: int
    tax: int
    service_charge: int
    grand_total: int
    placed_at: datetime
