"""
Request bodies for the blood donation API.

Each model validates the fields the platform knows about and lets any other
field through untouched, since clients attach their own profile and request
details. Server-owned fields (role, status, createdAt, ...) may appear in a
body but are overwritten or stripped by the service layer.

Collections:
- User -> "users"
- DonationRequest -> "donation-requests"
- Payment -> "payments"
"""

from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.networks import validate_email

BloodGroup = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]
UserRole = Literal["donor", "volunteer", "admin"]
UserStatus = Literal["active", "blocked"]
RequestStatus = Literal["pending", "inprogress", "done", "canceled"]


def _check_email(value: str) -> str:
    # validate only; the address is stored exactly as the client sent it
    validate_email(value)
    return value


Email = Annotated[str, AfterValidator(_check_email)]


# Users
class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Full name")
    email: Email = Field(..., description="Email address, unique per user")
    bloodGroup: Optional[BloodGroup] = None
    district: Optional[str] = None
    upazila: Optional[str] = None
    avatar: Optional[str] = Field(None, description="Public URL to profile picture")
    password: Optional[str] = Field(None, min_length=6, description="Stored hashed")


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    bloodGroup: Optional[BloodGroup] = None
    district: Optional[str] = None
    upazila: Optional[str] = None
    avatar: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


# Donation requests
class DonationRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    requesterEmail: Email = Field(..., description="Email of the requesting user")
    requesterName: Optional[str] = None
    recipientName: Optional[str] = None
    recipientDistrict: Optional[str] = None
    recipientUpazila: Optional[str] = None
    hospitalName: Optional[str] = None
    fullAddress: Optional[str] = None
    bloodGroup: Optional[BloodGroup] = None
    donationDate: Optional[str] = Field(None, description="ISO date string e.g., 2025-05-20")
    donationTime: Optional[str] = Field(None, description="e.g., 10:30")
    requestMessage: Optional[str] = None


class DonationRequestUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    requesterName: Optional[str] = None
    recipientName: Optional[str] = None
    recipientDistrict: Optional[str] = None
    recipientUpazila: Optional[str] = None
    hospitalName: Optional[str] = None
    fullAddress: Optional[str] = None
    bloodGroup: Optional[BloodGroup] = None
    donationDate: Optional[str] = None
    donationTime: Optional[str] = None
    requestMessage: Optional[str] = None


class StatusUpdate(BaseModel):
    status: RequestStatus
    donorName: Optional[str] = None
    donorEmail: Optional[str] = None

    @model_validator(mode="after")
    def donor_required_for_inprogress(self):
        # donor fields are only recorded on the move to inprogress
        if self.status != "inprogress":
            return self
        if not (self.donorName and self.donorEmail):
            raise ValueError("donorName and donorEmail are required to mark a request inprogress")
        _check_email(self.donorEmail)
        return self


# Funding
class Payment(BaseModel):
    name: Optional[str] = None
    email: Email
    amount: float = Field(..., gt=0, description="Amount in currency units")
    transactionId: Optional[str] = None
