from __future__ import annotations

import itertools
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from app.core.errors import StorageError


@dataclass
class User:
    id: int
    username: str
    email: str
    password: str = ""  # bcrypt hash, empty for federated accounts
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    firebase_uid: Optional[str] = None
    last_login: Optional[datetime] = None
    membership_type: str = "free"
    membership_expiry: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    fitbit_token: Optional[str] = None
    last_synced_fitness: Optional[datetime] = None


@dataclass
class FitnessGoal:
    id: int
    user_id: int
    title: str
    category: str  # cardio | strength | yoga | ...
    target_value: float
    unit: str  # steps | minutes | reps | ...
    frequency: str  # daily | weekly | monthly
    start_date: date
    end_date: Optional[date] = None
    is_completed: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FitnessEntry:
    id: int
    user_id: int
    entry_date: date
    category: str
    activity: str
    duration: int  # minutes
    goal_id: Optional[int] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class WorkoutPlan:
    id: int
    user_id: int
    title: str
    category: str
    exercises: List[Dict[str, Any]]
    duration: int  # minutes
    difficulty: str  # beginner | intermediate | advanced
    description: Optional[str] = None
    is_public: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


def _updatable(model: type, data: Dict[str, Any]) -> Dict[str, Any]:
    # Ids and timestamps are owned by the store
    protected = {"id", "created_at", "updated_at"}
    allowed = {f.name for f in fields(model)} - protected
    return {k: v for k, v in data.items() if k in allowed}


class MemStorage:
    """Process-local store for accounts and fitness data. Ids start at 1 per entity."""

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._goals: Dict[int, FitnessGoal] = {}
        self._entries: Dict[int, FitnessEntry] = {}
        self._plans: Dict[int, WorkoutPlan] = {}
        self._user_ids = itertools.count(1)
        self._goal_ids = itertools.count(1)
        self._entry_ids = itertools.count(1)
        self._plan_ids = itertools.count(1)

    def _require_user(self, user_id: Optional[int]) -> None:
        if user_id not in self._users:
            raise StorageError(f"user {user_id} not found")

    def _require_goal(self, goal_id: Optional[int]) -> None:
        if goal_id is not None and goal_id not in self._goals:
            raise StorageError(f"fitness goal {goal_id} not found")

    # User management
    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._users.values() if u.username == username), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self._users.values() if u.email == email), None)

    def get_user_by_firebase_uid(self, firebase_uid: str) -> Optional[User]:
        return next((u for u in self._users.values() if u.firebase_uid == firebase_uid), None)

    def resolve_user(self, identifier: str) -> Optional[User]:
        """Look a user up by numeric id, falling back to the firebase uid."""
        if identifier.isdigit():
            return self.get_user(int(identifier))
        return self.get_user_by_firebase_uid(identifier)

    def create_user(self, **data: Any) -> User:
        user = User(id=next(self._user_ids), **_updatable(User, data))
        if user.last_login is None:
            user.last_login = datetime.utcnow()
        self._users[user.id] = user
        return user

    def update_user(self, user_id: int, **data: Any) -> Optional[User]:
        existing = self._users.get(user_id)
        if existing is None:
            return None
        updated = replace(existing, **_updatable(User, data))
        self._users[user_id] = updated
        return updated

    def update_last_login(self, user_id: int) -> Optional[User]:
        return self.update_user(user_id, last_login=datetime.utcnow())

    # Membership and subscription
    def update_user_membership(self, user_id: int, membership_type: str, expiry: Optional[datetime]) -> Optional[User]:
        return self.update_user(user_id, membership_type=membership_type, membership_expiry=expiry)

    def update_stripe_info(self, user_id: int, customer_id: str, subscription_id: str) -> Optional[User]:
        return self.update_user(user_id, stripe_customer_id=customer_id, stripe_subscription_id=subscription_id)

    # Fitness goals
    def get_fitness_goals(self, user_id: int) -> List[FitnessGoal]:
        return [g for g in self._goals.values() if g.user_id == user_id]

    def get_fitness_goal(self, goal_id: int) -> Optional[FitnessGoal]:
        return self._goals.get(goal_id)

    def create_fitness_goal(self, **data: Any) -> FitnessGoal:
        self._require_user(data.get("user_id"))
        goal = FitnessGoal(id=next(self._goal_ids), **_updatable(FitnessGoal, data))
        self._goals[goal.id] = goal
        return goal

    def update_fitness_goal(self, goal_id: int, **data: Any) -> Optional[FitnessGoal]:
        existing = self._goals.get(goal_id)
        if existing is None:
            return None
        changes = _updatable(FitnessGoal, data)
        if "user_id" in changes:
            self._require_user(changes["user_id"])
        updated = replace(existing, updated_at=datetime.utcnow(), **changes)
        self._goals[goal_id] = updated
        return updated

    def delete_fitness_goal(self, goal_id: int) -> bool:
        return self._goals.pop(goal_id, None) is not None

    # Fitness entries
    def get_fitness_entries(
        self,
        user_id: int,
        goal_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[FitnessEntry]:
        entries = [e for e in self._entries.values() if e.user_id == user_id]
        if goal_id is not None:
            entries = [e for e in entries if e.goal_id == goal_id]
        if start_date is not None:
            entries = [e for e in entries if e.entry_date >= start_date]
        if end_date is not None:
            entries = [e for e in entries if e.entry_date <= end_date]
        return sorted(entries, key=lambda e: (e.entry_date, e.id))

    def create_fitness_entry(self, **data: Any) -> FitnessEntry:
        self._require_user(data.get("user_id"))
        self._require_goal(data.get("goal_id"))
        entry = FitnessEntry(id=next(self._entry_ids), **_updatable(FitnessEntry, data))
        self._entries[entry.id] = entry
        return entry

    def update_fitness_entry(self, entry_id: int, **data: Any) -> Optional[FitnessEntry]:
        existing = self._entries.get(entry_id)
        if existing is None:
            return None
        changes = _updatable(FitnessEntry, data)
        if "user_id" in changes:
            self._require_user(changes["user_id"])
        self._require_goal(changes.get("goal_id"))
        updated = replace(existing, **changes)
        self._entries[entry_id] = updated
        return updated

    def delete_fitness_entry(self, entry_id: int) -> bool:
        return self._entries.pop(entry_id, None) is not None

    # Workout plans
    def get_workout_plans(self, user_id: int) -> List[WorkoutPlan]:
        return [p for p in self._plans.values() if p.user_id == user_id]

    def get_public_workout_plans(self) -> List[WorkoutPlan]:
        return [p for p in self._plans.values() if p.is_public]

    def get_workout_plan(self, plan_id: int) -> Optional[WorkoutPlan]:
        return self._plans.get(plan_id)

    def create_workout_plan(self, **data: Any) -> WorkoutPlan:
        self._require_user(data.get("user_id"))
        plan = WorkoutPlan(id=next(self._plan_ids), **_updatable(WorkoutPlan, data))
        self._plans[plan.id] = plan
        return plan

    def update_workout_plan(self, plan_id: int, **data: Any) -> Optional[WorkoutPlan]:
        existing = self._plans.get(plan_id)
        if existing is None:
            return None
        changes = _updatable(WorkoutPlan, data)
        if "user_id" in changes:
            self._require_user(changes["user_id"])
        updated = replace(existing, updated_at=datetime.utcnow(), **changes)
        self._plans[plan_id] = updated
        return updated

    def delete_workout_plan(self, plan_id: int) -> bool:
        return self._plans.pop(plan_id, None) is not None


storage = MemStorage()
