"""API models for subscription endpoints."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CreateSubscriptionRequest(BaseModel):
    """Request to subscribe the authenticated user to a plan.

    The user ID comes from the x-user-sub header, never from the body.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "plan_id": "P-5ML4271244454362WXNWU5NQ",
                    "given_name": "Jane",
                    "surname": "Doe",
                    "email": "jane.doe@example.com",
                }
            ]
        },
    )

    plan_id: str = Field(
        ...,
        min_length=1,
        description="PayPal plan ID",
        examples=["P-5ML4271244454362WXNWU5NQ"],
    )
    given_name: str = Field(..., min_length=1, max_length=140)
    surname: str = Field(..., min_length=1, max_length=140)
    email: EmailStr = Field(..., description="Subscriber e-mail, encrypted at rest")
    idempotency_key: str | None = Field(
        default=None,
        max_length=108,
        description="Client-chosen key that makes a retried request safe",
    )
