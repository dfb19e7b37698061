"""Shipping details for checkout — a saved address plus profile, or an ad hoc form.

Ad hoc details are used for this order only and never written back to the
shopper's address book.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError
from pydantic import BaseModel

REQUIRED_FIELDS = ("first_name", "last_name", "email", "address", "city", "zip_code", "country", "phone")
PROFILE_FIELDS = ("first_name", "last_name", "email", "phone")


@dataclass(frozen=True)
class SavedAddress:
    """An address-book entry (read only)."""

    id: str
    street: str
    city: str
    zip_code: str
    country: str
    state: str | None = None
    is_default: bool = False


class ShippingForm(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not (getattr(self, name) or "").strip()]

    def is_complete(self) -> bool:
        return not self.missing_fields()


def resolve_shipping(form: ShippingForm, saved_address: SavedAddress | None = None, shopper=None) -> dict:
    """Return complete shipping info, or raise ``ValidationError``.

    A selected saved address is combined with the signed-in shopper's
    profile; every profile field must be present. Without a selection the
    form must be fully filled, whether or not the shopper has saved
    addresses.
    """
    if saved_address is not None:
        if shopper is None:
            raise ValidationError({"shipping": ["Saved addresses require a signed-in shopper"]})
        missing = [name for name in PROFILE_FIELDS if not getattr(shopper, name, None)]
        if missing:
            raise ValidationError({name: ["Missing from your profile"] for name in missing})
        return {
            "first_name": shopper.first_name,
            "last_name": shopper.last_name,
            "email": shopper.email,
            "phone": shopper.phone,
            "address": saved_address.street,
            "city": saved_address.city,
            "state": saved_address.state,
            "zip_code": saved_address.zip_code,
            "country": saved_address.country,
        }

    missing = form.missing_fields()
    if missing:
        raise ValidationError({name: ["This field is required"] for name in missing})
    return {name: (value.strip() if isinstance(value, str) else value) for name, value in form.model_dump().items()}
