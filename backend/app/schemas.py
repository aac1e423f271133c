from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


# Accounts

class RegisterRequest(BaseModel):
    username: str = Field(min_length=3)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class FirebaseUser(BaseModel):
    uid: str = Field(min_length=1)
    display_name: Optional[str] = None
    email: Optional[EmailStr] = None
    photo_url: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    firebase_uid: Optional[str] = None
    last_login: Optional[datetime] = None
    membership_type: str = "free"
    membership_expiry: Optional[datetime] = None

    class Config:
        from_attributes = True


# Membership

class SubscriptionRequest(BaseModel):
    plan_type: Literal["monthly", "yearly"]


class PricingPlan(BaseModel):
    plan_type: Literal["monthly", "yearly"]
    price: float
    billing_period: str
    savings: int


class PremiumFeature(BaseModel):
    title: str
    description: str


class MembershipInfo(BaseModel):
    user_id: int
    membership_type: Literal["free", "pro"] = "free"
    membership_expiry: Optional[datetime] = None
    benefits: List[str] = Field(default_factory=list)


# Fitness

class FitnessGoalIn(BaseModel):
    user_id: int
    title: str = Field(min_length=1)
    category: str = Field(min_length=1)
    target_value: float
    unit: str = Field(min_length=1)
    frequency: Literal["daily", "weekly", "monthly"]
    start_date: date
    end_date: Optional[date] = None
    is_completed: bool = False


class FitnessGoalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    frequency: Optional[Literal["daily", "weekly", "monthly"]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_completed: Optional[bool] = None


class FitnessGoalOut(FitnessGoalIn):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FitnessEntryIn(BaseModel):
    user_id: int
    goal_id: Optional[int] = None
    entry_date: date
    category: str = Field(min_length=1)
    activity: str = Field(min_length=1)
    duration: int = Field(ge=0)
    value: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


class FitnessEntryUpdate(BaseModel):
    goal_id: Optional[int] = None
    entry_date: Optional[date] = None
    category: Optional[str] = None
    activity: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    value: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


class FitnessEntryOut(FitnessEntryIn):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class WorkoutPlanIn(BaseModel):
    user_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = Field(min_length=1)
    exercises: List[Dict[str, Any]]
    duration: int = Field(ge=0)
    difficulty: Literal["beginner", "intermediate", "advanced"]
    is_public: bool = False


class WorkoutPlanUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    exercises: Optional[List[Dict[str, Any]]] = None
    duration: Optional[int] = Field(default=None, ge=0)
    difficulty: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    is_public: Optional[bool] = None


class WorkoutPlanOut(WorkoutPlanIn):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
